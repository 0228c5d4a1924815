"""Remote store access: the ``deliveries`` and ``customers`` tables.

Rows go in and come out in the remote (snake_case) shape. Keys without a
column are kept in ``additional_data`` and spread back on read. Driver errors
leave this module as ``RemoteUnavailable`` or ``UniquenessConflict``.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from loguru import logger
from sqlalchemy import DateTime, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deliverytracker.core.remote_retry import with_remote_retry
from deliverytracker.models import Base, Customer, Delivery
from deliverytracker.sync.fields import coerce_cost, parse_timestamp

DELIVERIES = "deliveries"
CUSTOMERS = "customers"

TABLE_MODELS: dict[str, type[Base]] = {
    DELIVERIES: Delivery,
    CUSTOMERS: Customer,
}

EXTRA_COLUMN = "additional_data"


class RemoteStore(Protocol):
    """What the orchestrator needs from the remote store."""

    async def select(self, table: str, owner_id: str) -> list[dict[str, Any]]: ...

    async def exists(self, table: str, owner_id: str, column: str, value: Any) -> bool: ...

    async def insert(
        self, table: str, owner_id: str, payload: Mapping[str, Any]
    ) -> dict[str, Any]: ...

    async def update(
        self, table: str, owner_id: str, record_id: Any, payload: Mapping[str, Any]
    ) -> dict[str, Any] | None: ...

    async def delete(self, table: str, owner_id: str, record_id: Any) -> bool: ...


def _model(table: str) -> type[Base]:
    try:
        return TABLE_MODELS[table]
    except KeyError:
        raise ValueError(f"Unknown table: {table}") from None


def row_to_dict(obj: Base) -> dict[str, Any]:
    """ORM row -> remote-shape dict with ``additional_data`` spread back in."""

    data = {column.key: getattr(obj, column.key) for column in obj.__table__.columns}
    extra = data.pop(EXTRA_COLUMN, None) or {}
    for key, value in extra.items():
        # A column left empty because its value did not fit reads back the raw value.
        if data.get(key) is None:
            data[key] = value
    return data


def split_payload(model: type[Base], payload: Mapping[str, Any]) -> dict[str, Any]:
    """Remote-shape dict -> column values, packing unknown keys into ``additional_data``."""

    columns = {column.key: column for column in model.__table__.columns}
    values: dict[str, Any] = {}
    extra: dict[str, Any] = dict(payload.get(EXTRA_COLUMN) or {})
    for key, value in payload.items():
        if key == EXTRA_COLUMN:
            continue
        column = columns.get(key)
        if column is None:
            extra[key] = value
            continue
        if isinstance(column.type, DateTime) and value is not None:
            parsed = parse_timestamp(value)
            if parsed is None:
                extra[key] = value
                if column.nullable:
                    values[key] = None
                continue
            value = parsed
        elif key == "additional_costs":
            value = coerce_cost(value)
        elif key == "id":
            if value in (None, ""):
                continue
            value = str(value)
        values[key] = value
    if extra:
        values[EXTRA_COLUMN] = extra
    return values


def merge_extra(
    stored: Mapping[str, Any] | None,
    values: Mapping[str, Any],
    extra: Mapping[str, Any] | None,
) -> dict[str, Any] | None:
    """New ``additional_data`` after an update.

    Keys the update writes to a real column are dropped; the update's own
    unknown keys win over what was stored.
    """

    merged = {key: value for key, value in (stored or {}).items() if key not in values}
    merged.update(extra or {})
    return merged or None


class SqlAlchemyRemoteStore:
    """``RemoteStore`` over the async SQLAlchemy session factory.

    Reads retry transient failures; writes run once so a dropped connection
    never replays an insert twice.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def select(self, table: str, owner_id: str) -> list[dict[str, Any]]:
        model = _model(table)

        async def _op() -> list[dict[str, Any]]:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(model)
                    .where(model.user_id == owner_id)
                    .order_by(model.created_at.desc())
                )
                return [row_to_dict(obj) for obj in result.scalars().all()]

        return await with_remote_retry(_op)

    async def exists(self, table: str, owner_id: str, column: str, value: Any) -> bool:
        model = _model(table)

        async def _op() -> bool:
            async with self.session_factory() as session:
                count = await session.scalar(
                    select(func.count())
                    .select_from(model)
                    .where(model.user_id == owner_id, getattr(model, column) == value)
                )
                return bool(count)

        return await with_remote_retry(_op)

    async def insert(
        self, table: str, owner_id: str, payload: Mapping[str, Any]
    ) -> dict[str, Any]:
        model = _model(table)
        values = split_payload(model, payload)
        values["user_id"] = owner_id

        async def _op() -> dict[str, Any]:
            async with self.session_factory() as session:
                obj = model(**values)
                session.add(obj)
                await session.commit()
                await session.refresh(obj)
                return row_to_dict(obj)

        row = await with_remote_retry(_op, attempts=1)
        logger.bind(table=table, record_id=row.get("id")).info("remote_inserted")
        return row

    async def update(
        self, table: str, owner_id: str, record_id: Any, payload: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        model = _model(table)
        values = split_payload(model, payload)
        values.pop("id", None)
        values.pop("user_id", None)
        extra = values.pop(EXTRA_COLUMN, None)

        async def _op() -> dict[str, Any] | None:
            async with self.session_factory() as session:
                obj = await session.scalar(
                    select(model).where(model.id == str(record_id), model.user_id == owner_id)
                )
                if obj is None:
                    return None
                for key, value in values.items():
                    setattr(obj, key, value)
                merged = merge_extra(obj.additional_data, values, extra)
                if merged != obj.additional_data:
                    obj.additional_data = merged
                await session.commit()
                await session.refresh(obj)
                return row_to_dict(obj)

        return await with_remote_retry(_op, attempts=1)

    async def delete(self, table: str, owner_id: str, record_id: Any) -> bool:
        model = _model(table)

        async def _op() -> bool:
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(model).where(model.id == str(record_id), model.user_id == owner_id)
                )
                await session.commit()
                return bool(result.rowcount)

        return await with_remote_retry(_op, attempts=1)

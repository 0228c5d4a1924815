"""Synchronization between the remote store, the local cache and in-memory state.

The remote store is authoritative. Reads fall back to the cached backup of
the Active set when it cannot be reached; writes that fail for lack of
connectivity are queued for ordered replay and re-raised to the caller.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Sequence

from loguru import logger
from pydantic import ValidationError

from deliverytracker.core.cache import ACTIVE_DELIVERIES_KEY, CUSTOMERS_KEY, SYNC_QUEUE_KEY, LocalCache
from deliverytracker.core.errors import (
    MalformedInput,
    NotFound,
    RemoteUnavailable,
    SyncError,
    UniquenessConflict,
)
from deliverytracker.schemas.delivery import DeliveryImportRow
from deliverytracker.sync.fields import (
    coerce_cost,
    customer_to_local_shape,
    customer_to_remote_shape,
    format_timestamp,
    to_local_shape,
    to_remote_shape,
)
from deliverytracker.sync.partition import (
    DEFAULT_STATUS,
    Partition,
    coerce_status,
    is_history_status,
    partition,
)
from deliverytracker.sync.remote import CUSTOMERS, DELIVERIES, RemoteStore
from deliverytracker.sync.retry_queue import (
    DrainResult,
    OperationKind,
    PendingOperation,
    RetryQueue,
)
from deliverytracker.sync.store import DeliveryStore
from deliverytracker.sync.transitions import (
    apply_status,
    completion_fields,
    moves_bucket,
)

# Records created while offline carry a temporary id until their insert replays.
LOCAL_ID_PREFIX = "local-"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_local_id(record_id: Any) -> bool:
    return isinstance(record_id, str) and record_id.startswith(LOCAL_ID_PREFIX)


def _validation_message(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'record'}: {error['msg']}"
        for error in exc.errors()
    )


@dataclass(slots=True)
class ImportReport:
    success: int = 0
    failed: int = 0
    queued: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    in_progress: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "failed": self.failed,
            "queued": self.queued,
            "errors": list(self.errors),
            "in_progress": self.in_progress,
        }


class SyncOrchestrator:
    """Entry point for every read and write of one owner's deliveries and customers."""

    def __init__(
        self,
        owner_id: str,
        *,
        remote: RemoteStore | None,
        cache: LocalCache,
        store: DeliveryStore | None = None,
        queue: RetryQueue | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.owner_id = owner_id
        self.remote = remote
        self.cache = cache
        self.store = store or DeliveryStore()
        self.queue = queue or RetryQueue(cache, cache_key=self._key(SYNC_QUEUE_KEY))
        self._clock = clock
        self._load_task: Optional[asyncio.Task[Partition]] = None
        self._importing = False
        self._last_suffix = 0
        # temporary id -> persisted id, filled as queued inserts replay
        self._replayed_ids: dict[str, str] = {}

    def _key(self, base: str) -> str:
        return f"{base}:{self.owner_id}"

    def _remote(self) -> RemoteStore:
        if self.remote is None:
            raise RemoteUnavailable("Remote store client is not configured.")
        return self.remote

    def _stamp(self) -> str:
        return format_timestamp(self._clock())

    def _suffixed(self, dr_number: str) -> str:
        # Each suffix is unique per orchestrator even when the clock has not moved.
        millis = max(int(self._clock().timestamp() * 1000), self._last_suffix + 1)
        self._last_suffix = millis
        return f"{dr_number}-{millis}"

    def _generate_dr_number(self) -> str:
        now = self._clock()
        millis = str(int(now.timestamp() * 1000))[-6:]
        return f"DR{now:%y%m%d}-{millis}"

    async def _write_backup(self) -> None:
        await self.cache.set(self._key(ACTIVE_DELIVERIES_KEY), self.store.active)

    async def _write_customers_backup(self) -> None:
        await self.cache.set(self._key(CUSTOMERS_KEY), self.store.customers)

    # ------------------------------------------------------------------ reads

    async def load(self) -> Partition:
        """Load deliveries remote-first; never raises.

        A call made while another load is in flight joins it instead of
        starting a second fetch.
        """

        if self._load_task is not None and not self._load_task.done():
            logger.info("load_joined_in_flight")
            return await asyncio.shield(self._load_task)
        self._load_task = asyncio.create_task(self._load())
        return await asyncio.shield(self._load_task)

    async def _load(self) -> Partition:
        try:
            rows = await self._remote().select(DELIVERIES, self.owner_id)
            snapshot = self.store.replace(partition(to_local_shape(row) for row in rows))
            await self._write_backup()
        except Exception as exc:
            logger.bind(error=str(exc), error_type=type(exc).__name__).warning(
                "load_remote_failed"
            )
            return await self._load_from_backup()
        logger.bind(
            source="remote",
            active=len(snapshot.active),
            history=len(snapshot.history),
        ).info("deliveries_loaded")
        return snapshot

    async def _load_from_backup(self) -> Partition:
        try:
            backup = await self.cache.get(self._key(ACTIVE_DELIVERIES_KEY))
        except Exception as exc:
            logger.bind(error=str(exc)).error("load_backup_unreadable")
            backup = None
        if isinstance(backup, list) and backup:
            # History is not backed up, so this path only restores Active.
            records = [to_local_shape(item) for item in backup if isinstance(item, dict)]
            snapshot = self.store.replace(partition(records))
        else:
            snapshot = self.store.replace(Partition())
        logger.bind(
            source="cache",
            active=len(snapshot.active),
            history=len(snapshot.history),
        ).info("deliveries_loaded")
        return snapshot

    async def load_customers(self) -> list[dict[str, Any]]:
        """Load customers remote-first, falling back to the cached copy; never raises."""

        try:
            rows = await self._remote().select(CUSTOMERS, self.owner_id)
            customers = self.store.replace_customers(
                [customer_to_local_shape(row) for row in rows]
            )
            await self._write_customers_backup()
            return customers
        except Exception as exc:
            logger.bind(error=str(exc), error_type=type(exc).__name__).warning(
                "load_customers_remote_failed"
            )
        try:
            backup = await self.cache.get(self._key(CUSTOMERS_KEY))
        except Exception as exc:
            logger.bind(error=str(exc)).error("load_customers_backup_unreadable")
            backup = None
        if not isinstance(backup, list):
            backup = []
        return self.store.replace_customers(
            [customer_to_local_shape(item) for item in backup if isinstance(item, dict)]
        )

    # ----------------------------------------------------------------- writes

    def _prepare_insert(self, record: Mapping[str, Any]) -> dict[str, Any]:
        now = self._clock()
        stamp = format_timestamp(now)
        payload = to_remote_shape(record)
        status = coerce_status(payload.get("status")) or DEFAULT_STATUS
        payload["status"] = status.value
        payload["additional_costs"] = coerce_cost(payload.get("additional_costs"))
        if not payload.get("dr_number"):
            payload["dr_number"] = self._generate_dr_number()
        if not payload.get("created_at"):
            payload["created_at"] = stamp
        payload["updated_at"] = stamp
        payload["last_modified"] = stamp
        payload["user_id"] = self.owner_id
        if is_history_status(status) and not payload.get("completed_at"):
            payload.update(to_remote_shape(completion_fields(now)))
        if is_local_id(payload.get("id")):
            payload.pop("id")
        return payload

    async def _insert_delivery(self, payload: dict[str, Any]) -> dict[str, Any]:
        remote = self._remote()
        dr_number = str(payload["dr_number"])
        if await remote.exists(DELIVERIES, self.owner_id, "dr_number", dr_number):
            payload = {**payload, "dr_number": self._suffixed(dr_number)}
            logger.bind(dr_number=dr_number, replacement=payload["dr_number"]).warning(
                "dr_number_conflict"
            )
        try:
            return await remote.insert(DELIVERIES, self.owner_id, payload)
        except UniquenessConflict:
            retry = {**payload, "dr_number": self._suffixed(dr_number)}
            logger.bind(dr_number=payload["dr_number"], replacement=retry["dr_number"]).warning(
                "dr_number_conflict_retry"
            )
            return await remote.insert(DELIVERIES, self.owner_id, retry)

    async def add(self, record: Mapping[str, Any]) -> dict[str, Any]:
        """Persist a new delivery and place it in its bucket.

        When the remote is unreachable the insert is queued and
        ``RemoteUnavailable`` is raised carrying the local copy.
        """

        payload = self._prepare_insert(record)
        try:
            row = await self._insert_delivery(payload)
        except RemoteUnavailable as exc:
            local = to_local_shape(payload)
            local["id"] = f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}"
            await self.queue.enqueue(
                PendingOperation(
                    kind=OperationKind.INSERT,
                    table=DELIVERIES,
                    payload=payload,
                    record_id=local["id"],
                )
            )
            raise RemoteUnavailable(exc.message, record=local, queued=True) from exc
        saved = to_local_shape(row)
        self.store.upsert(saved)
        await self._write_backup()
        logger.bind(record_id=saved.get("id"), dr_number=saved.get("drNumber")).info(
            "delivery_added"
        )
        return saved

    def _prepare_update(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        stamp = self._stamp()
        changes = to_remote_shape(fields)
        changes.pop("id", None)
        changes.pop("user_id", None)
        changes["updated_at"] = stamp
        if not changes.get("last_modified"):
            changes["last_modified"] = stamp
        if "additional_costs" in changes:
            changes["additional_costs"] = coerce_cost(changes["additional_costs"])
        return changes

    async def _queue_offline(
        self,
        kind: OperationKind,
        table: str,
        record_id: Any,
        payload: dict[str, Any] | None,
        message: str,
        record: dict[str, Any] | None = None,
    ) -> RemoteUnavailable:
        await self.queue.enqueue(
            PendingOperation(kind=kind, table=table, payload=payload, record_id=str(record_id))
        )
        return RemoteUnavailable(message, record=record, queued=True)

    async def update(self, record_id: Any, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Apply ``fields`` remotely and mirror the result in memory.

        A ``status`` among the fields goes through ``apply_status``, so an
        unrecognized value raises ``InvalidTransition`` and the completion
        fields are stamped or cleared with it.
        """

        if "status" in fields:
            fields = apply_status(fields, fields["status"], now=self._clock())
        changes = self._prepare_update(fields)
        current = self.store.find(record_id)
        try:
            if is_local_id(record_id):
                raise RemoteUnavailable("Delivery is not persisted yet.")
            row = await self._remote().update(DELIVERIES, self.owner_id, record_id, changes)
        except RemoteUnavailable as exc:
            optimistic = {**(current or {"id": record_id}), **to_local_shape(changes)}
            if current is not None:
                self.store.upsert(optimistic)
                await self._write_backup()
            raise await self._queue_offline(
                OperationKind.UPDATE, DELIVERIES, record_id, changes, exc.message, optimistic
            ) from exc
        if row is None:
            raise NotFound(f"Delivery {record_id} not found.")
        saved = to_local_shape(row)
        self.store.upsert(saved)
        await self._write_backup()
        return saved

    async def update_status(self, record_id: Any, status: Any) -> dict[str, Any]:
        """Move a delivery to ``status``, stamping completion fields as needed."""

        current = self.store.find(record_id)
        if current is None:
            raise NotFound(f"Delivery {record_id} not found.")
        saved = await self.update(record_id, {"status": status})
        logger.bind(
            record_id=saved.get("id"),
            from_status=current.get("status"),
            to_status=saved.get("status"),
            moved=moves_bucket(current, saved),
        ).info("delivery_status_changed")
        return saved

    async def remove(self, record_id: Any) -> None:
        try:
            if is_local_id(record_id):
                raise RemoteUnavailable("Delivery is not persisted yet.")
            deleted = await self._remote().delete(DELIVERIES, self.owner_id, record_id)
        except RemoteUnavailable as exc:
            removed = self.store.discard(record_id)
            if removed is not None:
                await self._write_backup()
            raise await self._queue_offline(
                OperationKind.DELETE, DELIVERIES, record_id, None, exc.message, removed
            ) from exc
        if not deleted:
            raise NotFound(f"Delivery {record_id} not found.")
        self.store.discard(record_id)
        await self._write_backup()
        logger.bind(record_id=str(record_id)).info("delivery_removed")

    async def add_customer(self, record: Mapping[str, Any]) -> dict[str, Any]:
        payload = customer_to_remote_shape(record)
        if not str(payload.get("name") or "").strip():
            raise MalformedInput("Customer name is required.")
        payload.setdefault("created_at", self._stamp())
        payload["user_id"] = self.owner_id
        try:
            row = await self._remote().insert(CUSTOMERS, self.owner_id, payload)
        except RemoteUnavailable as exc:
            local = customer_to_local_shape(payload)
            local["id"] = f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}"
            raise await self._queue_offline(
                OperationKind.INSERT, CUSTOMERS, local["id"], payload, exc.message, local
            ) from exc
        saved = customer_to_local_shape(row)
        self.store.upsert_customer(saved)
        await self._write_customers_backup()
        return saved

    async def update_customer(self, customer_id: Any, fields: Mapping[str, Any]) -> dict[str, Any]:
        changes = customer_to_remote_shape(fields)
        changes.pop("id", None)
        changes.pop("user_id", None)
        changes["updated_at"] = self._stamp()
        current = self.store.find_customer(customer_id)
        try:
            if is_local_id(customer_id):
                raise RemoteUnavailable("Customer is not persisted yet.")
            row = await self._remote().update(CUSTOMERS, self.owner_id, customer_id, changes)
        except RemoteUnavailable as exc:
            optimistic = {**(current or {"id": customer_id}), **customer_to_local_shape(changes)}
            if current is not None:
                self.store.upsert_customer(optimistic)
                await self._write_customers_backup()
            raise await self._queue_offline(
                OperationKind.UPDATE, CUSTOMERS, customer_id, changes, exc.message, optimistic
            ) from exc
        if row is None:
            raise NotFound(f"Customer {customer_id} not found.")
        saved = customer_to_local_shape(row)
        self.store.upsert_customer(saved)
        await self._write_customers_backup()
        return saved

    # ------------------------------------------------------------ batch import

    def _validate_import_row(self, record: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(record, Mapping):
            raise MalformedInput("Row is not an object.")
        try:
            row = DeliveryImportRow.model_validate(to_local_shape(record))
        except ValidationError as exc:
            raise MalformedInput(_validation_message(exc)) from exc
        return row.model_dump(exclude_unset=True)

    async def import_many(self, records: Sequence[Mapping[str, Any]]) -> ImportReport:
        """Add each row in order; a failing row is reported and the batch continues.

        Rows run one at a time so DR-number disambiguation sees the rows
        imported before it. A call made while an import is running is a no-op.
        """

        if self._importing:
            logger.warning("import_already_in_progress")
            return ImportReport(in_progress=True)
        self._importing = True
        report = ImportReport()
        seen_serials = {
            str(record["serialNumber"]).strip().lower()
            for record in self.store.active
            if record.get("serialNumber")
        }
        try:
            for row_no, record in enumerate(records, start=1):
                raw = dict(record) if isinstance(record, Mapping) else {"value": record}
                try:
                    row = self._validate_import_row(record)
                    serial = str(row.get("serialNumber") or "").strip().lower()
                    if serial and serial in seen_serials:
                        raise MalformedInput(
                            f"Duplicate serial number {row['serialNumber']!r}."
                        )
                    try:
                        await self.add(row)
                    except RemoteUnavailable as exc:
                        if not exc.queued:
                            raise
                        # Queued for replay, not failed.
                        report.queued += 1
                    else:
                        report.success += 1
                    if serial:
                        seen_serials.add(serial)
                except SyncError as exc:
                    report.failed += 1
                    report.errors.append(
                        {"row": row_no, "record": raw, "message": exc.message}
                    )
                except Exception as exc:
                    logger.bind(row=row_no).exception("import_row_failed")
                    report.failed += 1
                    report.errors.append(
                        {"row": row_no, "record": raw, "message": str(exc)}
                    )
        finally:
            self._importing = False
        logger.bind(
            total=len(records),
            success=report.success,
            queued=report.queued,
            failed=report.failed,
        ).info("import_completed")
        return report

    # -------------------------------------------------------------- realtime

    async def apply_change(
        self,
        event_type: str,
        table: str,
        new: Mapping[str, Any] | None = None,
        old: Mapping[str, Any] | None = None,
    ) -> None:
        """Apply a pushed row change through the same normalize/partition path as loads."""

        kind = event_type.upper()
        if table == DELIVERIES:
            if kind in ("INSERT", "UPDATE") and new:
                record = to_local_shape(new)
                if record.get("userId") not in (None, self.owner_id):
                    return
                self.store.upsert(record)
            elif kind == "DELETE" and old:
                self.store.discard(to_local_shape(old).get("id"))
            else:
                return
            await self._write_backup()
        elif table == CUSTOMERS:
            if kind in ("INSERT", "UPDATE") and new:
                customer = customer_to_local_shape(new)
                if customer.get("userId") not in (None, self.owner_id):
                    return
                self.store.upsert_customer(customer)
            elif kind == "DELETE" and old:
                self.store.discard_customer(customer_to_local_shape(old).get("id"))
            else:
                return
            await self._write_customers_backup()
        else:
            logger.bind(table=table).debug("change_event_ignored")
            return
        logger.bind(table=table, event=kind).info("change_event_applied")

    # ---------------------------------------------------------------- replay

    async def drain_queue(self, *, force: bool = False) -> DrainResult:
        """Replay queued writes in order.

        ``force`` skips the head's backoff window; reconnect handlers pass it.
        """

        if self.remote is None:
            return DrainResult(remaining=len(self.queue), deferred=True)
        result = await self.queue.drain(self._replay, force=force)
        if result.processed:
            await self._write_backup()
            await self._write_customers_backup()
        return result

    def _resolve_id(self, record_id: Optional[str]) -> Optional[str]:
        if record_id is None:
            return None
        return self._replayed_ids.get(record_id, record_id)

    async def _replay(self, op: PendingOperation) -> None:
        remote = self._remote()
        record_id = self._resolve_id(op.record_id)
        payload = dict(op.payload or {})
        if is_local_id(record_id) and op.kind is not OperationKind.INSERT:
            raise RemoteUnavailable(f"Insert for {record_id} has not replayed yet.")

        if op.kind is OperationKind.INSERT:
            if is_local_id(payload.get("id")):
                payload.pop("id")
            if op.table == DELIVERIES:
                saved = to_local_shape(await self._insert_delivery(payload))
                if op.record_id:
                    self.store.discard(op.record_id)
                self.store.upsert(saved)
            else:
                saved = customer_to_local_shape(await remote.insert(op.table, self.owner_id, payload))
                if op.record_id:
                    self.store.discard_customer(op.record_id)
                self.store.upsert_customer(saved)
            if op.record_id:
                self._replayed_ids[op.record_id] = str(saved["id"])
        elif op.kind is OperationKind.UPDATE:
            row = await remote.update(op.table, self.owner_id, record_id, payload)
            if row is None:
                logger.bind(table=op.table, record_id=record_id).warning("replay_target_missing")
            elif op.table == DELIVERIES:
                self.store.upsert(to_local_shape(row))
            else:
                self.store.upsert_customer(customer_to_local_shape(row))
        else:
            await remote.delete(op.table, self.owner_id, record_id)
            if op.table == DELIVERIES:
                self.store.discard(record_id)
            else:
                self.store.discard_customer(record_id)

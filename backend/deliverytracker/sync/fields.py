"""Field mapping between the local (camelCase) and remote (snake_case) shapes.

This is the only place that knows about alternate spellings of a field.
Every other component works on the canonical local shape.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any, Mapping

# Local name -> remote column name.
DELIVERY_FIELD_MAP: dict[str, str] = {
    "id": "id",
    "drNumber": "dr_number",
    "customerName": "customer_name",
    "vendorNumber": "vendor_number",
    "origin": "origin",
    "destination": "destination",
    "truckType": "truck_type",
    "truckPlateNumber": "truck_plate_number",
    "distance": "distance",
    "itemNumber": "item_number",
    "itemDescription": "item_description",
    "serialNumber": "serial_number",
    "mobileNumber": "mobile_number",
    "status": "status",
    "additionalCosts": "additional_costs",
    "deliveryDate": "delivery_date",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "completedAt": "completed_at",
    "completedDate": "completed_date",
    "completedDateTime": "completed_date_time",
    "lastModified": "last_modified",
    "createdBy": "created_by",
    "userId": "user_id",
}

# Legacy local spellings -> canonical local name.
DELIVERY_LOCAL_ALIASES: dict[str, str] = {
    "deliveryId": "id",
    "truckPlate": "truckPlateNumber",
    "timestamp": "createdAt",
    "completedTimestamp": "completedAt",
}

# Legacy remote spellings -> canonical remote name.
DELIVERY_REMOTE_ALIASES: dict[str, str] = {
    "delivery_id": "id",
}

CUSTOMER_FIELD_MAP: dict[str, str] = {
    "id": "id",
    "name": "name",
    "email": "email",
    "phone": "phone",
    "mobileNumber": "mobile_number",
    "address": "address",
    "vendorNumber": "vendor_number",
    "contactPerson": "contact_person",
    "userId": "user_id",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

CUSTOMER_LOCAL_ALIASES: dict[str, str] = {
    "customerId": "id",
    "customerName": "name",
    "mobile": "mobileNumber",
}

CUSTOMER_REMOTE_ALIASES: dict[str, str] = {
    "customer_id": "id",
    "customer_name": "name",
}

TIMESTAMP_FIELDS = frozenset({"createdAt", "updatedAt", "completedAt", "lastModified"})
DATE_FIELDS = frozenset({"deliveryDate"})
COST_FIELDS = frozenset({"additionalCosts"})

_DATE_FORMATS = ("%m/%d/%Y", "%d-%m-%Y", "%Y/%m/%d")


def _invert(mapping: Mapping[str, str]) -> dict[str, str]:
    return {remote: local for local, remote in mapping.items()}


DELIVERY_REVERSE_MAP = _invert(DELIVERY_FIELD_MAP)
CUSTOMER_REVERSE_MAP = _invert(CUSTOMER_FIELD_MAP)

REMOTE_TIMESTAMP_FIELDS = frozenset(DELIVERY_FIELD_MAP[f] for f in TIMESTAMP_FIELDS)
REMOTE_DATE_FIELDS = frozenset(DELIVERY_FIELD_MAP[f] for f in DATE_FIELDS)
REMOTE_COST_FIELDS = frozenset(DELIVERY_FIELD_MAP[f] for f in COST_FIELDS)
CUSTOMER_TIMESTAMP_FIELDS = frozenset({"createdAt", "updatedAt"})
REMOTE_CUSTOMER_TIMESTAMP_FIELDS = frozenset(CUSTOMER_FIELD_MAP[f] for f in CUSTOMER_TIMESTAMP_FIELDS)

# Both directions accept either convention's legacy spellings on input.
# Values are canonical names on the *source* side of the conversion.
_DELIVERY_TO_REMOTE_ALIASES = {
    **DELIVERY_LOCAL_ALIASES,
    **{alias: DELIVERY_REVERSE_MAP[target] for alias, target in DELIVERY_REMOTE_ALIASES.items()},
}
_DELIVERY_TO_LOCAL_ALIASES = {
    **DELIVERY_REMOTE_ALIASES,
    **{alias: DELIVERY_FIELD_MAP[target] for alias, target in DELIVERY_LOCAL_ALIASES.items()},
}
_CUSTOMER_TO_REMOTE_ALIASES = {
    **CUSTOMER_LOCAL_ALIASES,
    **{alias: CUSTOMER_REVERSE_MAP[target] for alias, target in CUSTOMER_REMOTE_ALIASES.items()},
}
_CUSTOMER_TO_LOCAL_ALIASES = {
    **CUSTOMER_REMOTE_ALIASES,
    **{alias: CUSTOMER_FIELD_MAP[target] for alias, target in CUSTOMER_LOCAL_ALIASES.items()},
}


def format_timestamp(value: datetime) -> str:
    """Render ``value`` in the canonical form, e.g. ``2024-01-05T10:00:00.000Z``."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a timestamp-like value into an aware UTC datetime, or ``None``."""

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_timestamp(value: Any) -> Any:
    """Canonicalize a timestamp; values that do not parse are returned unchanged."""

    parsed = parse_timestamp(value)
    if parsed is None:
        return value
    return format_timestamp(parsed)


def normalize_date(value: Any) -> Any:
    """Canonicalize a calendar date to ``YYYY-MM-DD``; unparsable values pass through."""

    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str) or not value.strip():
        return value
    text = value.strip()
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return value


def coerce_cost(value: Any) -> float:
    """Coerce a cost to a non-negative float, defaulting to ``0.0``."""

    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.replace(",", "").replace("₱", "").strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0.0
    return number


def _rename(
    record: Mapping[str, Any],
    mapping: Mapping[str, str],
    aliases: Mapping[str, str],
) -> dict[str, Any]:
    renamed: dict[str, Any] = {}
    canonical: dict[str, Any] = {}
    for key, value in record.items():
        if key in mapping:
            canonical[mapping[key]] = value
        elif key in aliases:
            renamed.setdefault(mapping[aliases[key]], value)
        else:
            renamed[key] = value
    # A canonical spelling always beats an alias or a pass-through collision.
    renamed.update(canonical)
    return renamed


def _coerce_values(
    record: dict[str, Any],
    *,
    timestamps: frozenset[str],
    dates: frozenset[str],
    costs: frozenset[str],
) -> dict[str, Any]:
    for key in record.keys() & timestamps:
        record[key] = normalize_timestamp(record[key])
    for key in record.keys() & dates:
        record[key] = normalize_date(record[key])
    for key in record.keys() & costs:
        record[key] = coerce_cost(record[key])
    return record


def to_remote_shape(record: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a delivery from the local shape to the remote column names."""

    remote = _rename(record, DELIVERY_FIELD_MAP, _DELIVERY_TO_REMOTE_ALIASES)
    return _coerce_values(
        remote,
        timestamps=REMOTE_TIMESTAMP_FIELDS,
        dates=REMOTE_DATE_FIELDS,
        costs=REMOTE_COST_FIELDS,
    )


def to_local_shape(record: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a delivery from remote column names to the local shape."""

    local = _rename(record, DELIVERY_REVERSE_MAP, _DELIVERY_TO_LOCAL_ALIASES)
    return _coerce_values(
        local,
        timestamps=TIMESTAMP_FIELDS,
        dates=DATE_FIELDS,
        costs=COST_FIELDS,
    )


def customer_to_remote_shape(record: Mapping[str, Any]) -> dict[str, Any]:
    remote = _rename(record, CUSTOMER_FIELD_MAP, _CUSTOMER_TO_REMOTE_ALIASES)
    return _coerce_values(
        remote,
        timestamps=REMOTE_CUSTOMER_TIMESTAMP_FIELDS,
        dates=frozenset(),
        costs=frozenset(),
    )


def customer_to_local_shape(record: Mapping[str, Any]) -> dict[str, Any]:
    local = _rename(record, CUSTOMER_REVERSE_MAP, _CUSTOMER_TO_LOCAL_ALIASES)
    return _coerce_values(
        local,
        timestamps=CUSTOMER_TIMESTAMP_FIELDS,
        dates=frozenset(),
        costs=frozenset(),
    )

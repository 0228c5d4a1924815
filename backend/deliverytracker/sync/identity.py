"""Type-tolerant record lookup by identifier."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

IDENTITY_FIELDS = ("id", "delivery_id", "deliveryId", "customer_id", "customerId")


def _matches(value: Any, target: Any) -> bool:
    if value is None or value == "":
        return False
    return value == target or str(value) == str(target)


def has_id(record: Mapping[str, Any], target: Any) -> bool:
    """True when any identity-bearing field of ``record`` equals ``target``."""

    if target is None or target == "":
        return False
    return any(_matches(record.get(field), target) for field in IDENTITY_FIELDS)


def index_of_id(records: Sequence[Mapping[str, Any]], target: Any) -> int:
    for index, record in enumerate(records):
        if has_id(record, target):
            return index
    return -1


def find_by_id(records: Sequence[Mapping[str, Any]], target: Any) -> Mapping[str, Any] | None:
    index = index_of_id(records, target)
    return records[index] if index >= 0 else None

"""Active/History classification of deliveries by status.

Bucket membership is derived from ``status`` on every call; any bucket flag
stored on a record is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping


class DeliveryStatus(str, Enum):
    ON_SCHEDULE = "On Schedule"
    ACTIVE = "Active"
    IN_TRANSIT = "In Transit"
    OUT_FOR_DELIVERY = "Out for Delivery"
    PENDING = "Pending"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"
    SIGNED = "Signed"
    DELIVERED = "Delivered"


class Bucket(str, Enum):
    ACTIVE = "active"
    HISTORY = "history"


DEFAULT_STATUS = DeliveryStatus.ON_SCHEDULE

# Cancelled stays with the operator's active work list until someone closes it out.
STATUS_BUCKETS: dict[DeliveryStatus, Bucket] = {
    DeliveryStatus.ON_SCHEDULE: Bucket.ACTIVE,
    DeliveryStatus.ACTIVE: Bucket.ACTIVE,
    DeliveryStatus.IN_TRANSIT: Bucket.ACTIVE,
    DeliveryStatus.OUT_FOR_DELIVERY: Bucket.ACTIVE,
    DeliveryStatus.PENDING: Bucket.ACTIVE,
    DeliveryStatus.CANCELLED: Bucket.ACTIVE,
    DeliveryStatus.COMPLETED: Bucket.HISTORY,
    DeliveryStatus.SIGNED: Bucket.HISTORY,
    DeliveryStatus.DELIVERED: Bucket.HISTORY,
}

_STATUS_LOOKUP = {status.value.lower(): status for status in DeliveryStatus}


def coerce_status(value: Any) -> DeliveryStatus | None:
    """Return the recognized status for ``value`` (case-insensitive), else ``None``."""

    if isinstance(value, DeliveryStatus):
        return value
    if not isinstance(value, str):
        return None
    return _STATUS_LOOKUP.get(" ".join(value.split()).lower())


def bucket_for(status: Any) -> Bucket:
    """Bucket for a raw status value; unknown or missing means On Schedule."""

    recognized = coerce_status(status) or DEFAULT_STATUS
    return STATUS_BUCKETS[recognized]


def is_history_status(status: Any) -> bool:
    return bucket_for(status) is Bucket.HISTORY


@dataclass(slots=True)
class Partition:
    """Deliveries split into the two buckets, each in input order."""

    active: list[dict[str, Any]] = field(default_factory=list)
    history: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {"active": list(self.active), "history": list(self.history)}


def partition(records: Iterable[Mapping[str, Any]]) -> Partition:
    result = Partition()
    for record in records:
        if bucket_for(record.get("status")) is Bucket.HISTORY:
            result.history.append(dict(record))
        else:
            result.active.append(dict(record))
    return result

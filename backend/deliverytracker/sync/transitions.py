"""Status changes on a single delivery record."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from deliverytracker.core.config import settings
from deliverytracker.core.errors import InvalidTransition
from deliverytracker.sync.fields import format_timestamp
from deliverytracker.sync.partition import Bucket, STATUS_BUCKETS, bucket_for, coerce_status

COMPLETION_FIELDS = ("completedAt", "completedDate", "completedDateTime")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _display_zone() -> timezone:
    return timezone(timedelta(hours=settings.DISPLAY_UTC_OFFSET_HOURS))


def completion_fields(now: datetime) -> dict[str, str]:
    """The three renderings of a completion instant the dashboard displays."""

    local = now.astimezone(_display_zone())
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    local_date = f"{local.month}/{local.day}/{local.year}"
    return {
        "completedAt": format_timestamp(now),
        "completedDate": local_date,
        "completedDateTime": f"{local_date}, {hour}:{local.minute:02d}:{local.second:02d} {meridiem}",
    }


def apply_status(
    record: Mapping[str, Any],
    new_status: Any,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Return a copy of ``record`` moved to ``new_status``.

    Any recognized status may follow any other. History statuses stamp the
    completion fields; active statuses clear them. Raises ``InvalidTransition``
    for a status outside the vocabulary.
    """

    status = coerce_status(new_status)
    if status is None:
        raise InvalidTransition(f"Unrecognized delivery status: {new_status!r}")

    now = now or _utcnow()
    stamp = format_timestamp(now)
    updated = dict(record)
    updated["status"] = status.value
    updated["updatedAt"] = stamp
    updated["lastModified"] = stamp
    if STATUS_BUCKETS[status] is Bucket.HISTORY:
        updated.update(completion_fields(now))
    else:
        for name in COMPLETION_FIELDS:
            updated[name] = None
    return updated


def moves_bucket(before: Mapping[str, Any], after: Mapping[str, Any]) -> bool:
    return bucket_for(before.get("status")) is not bucket_for(after.get("status"))

"""Error taxonomy shared by the sync core and the HTTP layer."""

from __future__ import annotations

from typing import Any


class SyncError(Exception):
    """Base class for every failure the sync core reports to callers."""

    detail = "Synchronization failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.detail)
        self.message = message or self.detail


class RemoteUnavailable(SyncError):
    """The remote store is unreachable, timed out, or was never configured.

    ``record`` holds the local copy of a write that was queued for replay so
    the caller can keep showing it.
    """

    detail = "Remote store is unavailable. Changes will sync when it is back online."

    def __init__(
        self,
        message: str | None = None,
        *,
        record: dict[str, Any] | None = None,
        queued: bool = False,
    ) -> None:
        super().__init__(message)
        self.record = record
        self.queued = queued


class UniquenessConflict(SyncError):
    detail = "A delivery with this DR number already exists."


class InvalidTransition(SyncError):
    detail = "Unrecognized delivery status."


class NotFound(SyncError):
    detail = "Record not found."


class MalformedInput(SyncError):
    detail = "Record is missing required fields or contains unparsable values."

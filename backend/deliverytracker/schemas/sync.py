"""Pydantic schemas for sync endpoints (queue state, realtime events)."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class ChangeEvent(BaseModel):
    """A realtime row change as pushed by the remote store."""

    eventType: Literal["INSERT", "UPDATE", "DELETE"]
    table: str = Field(min_length=1)
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None


class PendingOperationOut(BaseModel):
    kind: str
    table: str
    record_id: Optional[str] = None
    attempts: int
    last_error: Optional[str] = None
    enqueued_at: str


class QueueStateOut(BaseModel):
    pending: List[PendingOperationOut]
    dead_letters: List[PendingOperationOut]


class DrainOut(BaseModel):
    processed: int
    remaining: int
    deferred: bool
    in_progress: bool
    retry_after: Optional[float] = None
    failed: Optional[PendingOperationOut] = None
    dead_lettered: Optional[PendingOperationOut] = None

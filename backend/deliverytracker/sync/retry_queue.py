"""Ordered queue of remote writes that failed while the remote was unreachable."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from deliverytracker.core.cache import SYNC_QUEUE_KEY, LocalCache
from deliverytracker.core.config import settings
from deliverytracker.sync.fields import format_timestamp


class OperationKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(slots=True)
class PendingOperation:
    """One remote write waiting for replay."""

    kind: OperationKind
    table: str
    payload: Optional[dict[str, Any]] = None
    record_id: Optional[str] = None
    attempts: int = 0
    not_before: float = 0.0
    last_error: Optional[str] = None
    enqueued_at: str = field(
        default_factory=lambda: format_timestamp(datetime.now(timezone.utc))
    )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingOperation":
        values = dict(data)
        values["kind"] = OperationKind(values["kind"])
        return cls(**values)


@dataclass(slots=True)
class DrainResult:
    processed: int = 0
    remaining: int = 0
    failed: Optional[PendingOperation] = None
    dead_lettered: Optional[PendingOperation] = None
    deferred: bool = False
    in_progress: bool = False
    retry_after: Optional[float] = None


Executor = Callable[[PendingOperation], Awaitable[Any]]


class RetryQueue:
    """FIFO of pending writes, persisted to the local cache.

    ``drain`` replays from the head and stops at the first failure, so no
    write is ever applied ahead of an earlier one. A failed head backs off
    exponentially and is dead-lettered after ``max_attempts`` failures.
    """

    def __init__(
        self,
        cache: LocalCache | None = None,
        *,
        cache_key: str = SYNC_QUEUE_KEY,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.cache_key = cache_key
        self.max_attempts = max_attempts or settings.RETRY_QUEUE_MAX_ATTEMPTS
        self.base_delay = (
            base_delay if base_delay is not None else settings.RETRY_QUEUE_BASE_DELAY
        )
        self._clock = clock
        self._items: deque[PendingOperation] = deque()
        self._dead_letters: list[PendingOperation] = []
        self._draining = False

    def __len__(self) -> int:
        return len(self._items)

    @property
    def pending(self) -> list[PendingOperation]:
        return list(self._items)

    @property
    def dead_letters(self) -> list[PendingOperation]:
        return list(self._dead_letters)

    async def restore(self) -> int:
        """Reload persisted operations; returns how many are pending."""

        if self.cache is None:
            return len(self._items)
        stored = await self.cache.get(self.cache_key) or {}
        try:
            self._items = deque(
                PendingOperation.from_dict(item) for item in stored.get("pending", [])
            )
            self._dead_letters = [
                PendingOperation.from_dict(item) for item in stored.get("dead", [])
            ]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.bind(error=str(exc)).warning("retry_queue_restore_failed")
            self._items = deque()
            self._dead_letters = []
        if self._items:
            logger.bind(pending=len(self._items)).info("retry_queue_restored")
        return len(self._items)

    async def _persist(self) -> None:
        if self.cache is None:
            return
        await self.cache.set(
            self.cache_key,
            {
                "pending": [op.to_dict() for op in self._items],
                "dead": [op.to_dict() for op in self._dead_letters],
            },
        )

    async def enqueue(self, op: PendingOperation) -> None:
        self._items.append(op)
        logger.bind(
            kind=op.kind.value,
            table=op.table,
            record_id=op.record_id,
            pending=len(self._items),
        ).info("retry_queue_enqueued")
        await self._persist()

    async def drain(self, executor: Executor, *, force: bool = False) -> DrainResult:
        """Replay pending operations in order until one fails or the queue empties.

        A head still inside its backoff window defers the drain, and
        ``retry_after`` says how many seconds remain. Nothing re-drains on a
        timer: the caller drains again later, or passes ``force`` when it knows
        the remote is back (a reconnect), which replays the head regardless.
        """

        if self._draining:
            return DrainResult(remaining=len(self._items), in_progress=True)
        self._draining = True
        result = DrainResult()
        try:
            while self._items:
                op = self._items[0]
                if not force and op.not_before > self._clock():
                    result.deferred = True
                    break
                try:
                    await executor(op)
                except Exception as exc:
                    self._record_failure(op, exc, result)
                    break
                self._items.popleft()
                result.processed += 1
                await self._persist()
        finally:
            self._draining = False
            result.remaining = len(self._items)
            if self._items:
                result.retry_after = max(self._items[0].not_before - self._clock(), 0.0)
            await self._persist()
        logger.bind(
            processed=result.processed,
            remaining=result.remaining,
            deferred=result.deferred,
            forced=force,
        ).info("retry_queue_drained")
        return result

    def _record_failure(
        self, op: PendingOperation, exc: Exception, result: DrainResult
    ) -> None:
        op.attempts += 1
        op.last_error = str(exc)
        log = logger.bind(
            kind=op.kind.value,
            table=op.table,
            record_id=op.record_id,
            attempts=op.attempts,
            error=str(exc),
        )
        if op.attempts >= self.max_attempts:
            self._items.popleft()
            self._dead_letters.append(op)
            result.dead_lettered = op
            log.error("retry_queue_dead_lettered")
            return
        op.not_before = self._clock() + self.base_delay * (2 ** (op.attempts - 1))
        result.failed = op
        log.warning("retry_queue_replay_failed")

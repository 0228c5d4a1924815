"""Pending-write replay and realtime change endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from deliverytracker.core.deps import get_orchestrator
from deliverytracker.schemas.sync import ChangeEvent, DrainOut, PendingOperationOut, QueueStateOut
from deliverytracker.sync.orchestrator import SyncOrchestrator
from deliverytracker.sync.retry_queue import PendingOperation

router = APIRouter(prefix="/sync", tags=["sync"])


def _serialise_operation(op: Optional[PendingOperation]) -> Optional[PendingOperationOut]:
    if op is None:
        return None
    return PendingOperationOut(
        kind=op.kind.value,
        table=op.table,
        record_id=op.record_id,
        attempts=op.attempts,
        last_error=op.last_error,
        enqueued_at=op.enqueued_at,
    )


@router.get("/queue", response_model=QueueStateOut)
async def queue_state(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> QueueStateOut:
    return QueueStateOut(
        pending=[_serialise_operation(op) for op in orchestrator.queue.pending],
        dead_letters=[_serialise_operation(op) for op in orchestrator.queue.dead_letters],
    )


@router.post("/drain", response_model=DrainOut)
async def drain_queue(
    force: bool = Query(False, description="Replay the head even inside its backoff window"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> DrainOut:
    """Replay queued writes.

    The server does not re-drain on a timer. A deferred drain reports
    ``retry_after`` seconds; a client that sees the connection come back
    should call with ``force=true``.
    """

    result = await orchestrator.drain_queue(force=force)
    return DrainOut(
        processed=result.processed,
        remaining=result.remaining,
        deferred=result.deferred,
        in_progress=result.in_progress,
        retry_after=result.retry_after,
        failed=_serialise_operation(result.failed),
        dead_lettered=_serialise_operation(result.dead_lettered),
    )


@router.post("/events", status_code=status.HTTP_202_ACCEPTED)
async def apply_change_event(
    event: ChangeEvent,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> dict[str, str]:
    await orchestrator.apply_change(event.eventType, event.table, event.new, event.old)
    return {"status": "applied"}

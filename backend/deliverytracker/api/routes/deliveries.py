"""Delivery booking, status and batch import endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request, Response, status

from deliverytracker.core.config import settings
from deliverytracker.core.deps import get_orchestrator
from deliverytracker.core.rate_limit import limiter
from deliverytracker.schemas.delivery import (
    DeliveryCreate,
    DeliveryImportOut,
    DeliveryImportPayload,
    DeliveryListOut,
    DeliveryStatusUpdate,
)
from deliverytracker.sync.orchestrator import SyncOrchestrator

router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@router.get("", response_model=DeliveryListOut)
async def list_deliveries(
    refresh: bool = True,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> DeliveryListOut:
    """Active and History buckets; ``refresh=false`` serves the in-memory state."""

    snapshot = await orchestrator.load() if refresh else orchestrator.store.snapshot()
    return DeliveryListOut(**snapshot.as_dict())


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_delivery(
    payload: DeliveryCreate,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    return await orchestrator.add(payload.model_dump(exclude_none=True))


@router.patch("/{delivery_id}")
async def update_delivery(
    delivery_id: str,
    fields: Dict[str, Any] = Body(...),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    return await orchestrator.update(delivery_id, fields)


@router.post("/{delivery_id}/status")
async def change_delivery_status(
    delivery_id: str,
    payload: DeliveryStatusUpdate,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    return await orchestrator.update_status(delivery_id, payload.status)


@router.delete("/{delivery_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_delivery(
    delivery_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Response:
    await orchestrator.remove(delivery_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/import", response_model=DeliveryImportOut)
@limiter.limit(settings.IMPORT_UPLOAD_RATE)
async def import_deliveries(
    payload: DeliveryImportPayload,
    request: Request,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> DeliveryImportOut:
    """Import rows already parsed from an upload; failures are reported per row."""

    report = await orchestrator.import_many(payload.records)
    return DeliveryImportOut(**report.as_dict())

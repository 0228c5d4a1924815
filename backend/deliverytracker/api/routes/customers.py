"""Customer directory endpoints."""

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, status

from deliverytracker.core.deps import get_orchestrator
from deliverytracker.schemas.customer import CustomerCreate
from deliverytracker.sync.orchestrator import SyncOrchestrator

router = APIRouter(prefix="/customers", tags=["customers"])


@router.get("")
async def list_customers(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> List[Dict[str, Any]]:
    return await orchestrator.load_customers()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_customer(
    payload: CustomerCreate,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    return await orchestrator.add_customer(payload.model_dump(exclude_none=True))


@router.patch("/{customer_id}")
async def update_customer(
    customer_id: str,
    fields: Dict[str, Any] = Body(...),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    return await orchestrator.update_customer(customer_id, fields)

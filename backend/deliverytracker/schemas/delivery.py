"""Pydantic schemas for delivery operations."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from deliverytracker.sync.partition import coerce_status


def _to_text(value: Any) -> Any:
    # Spreadsheet cells arrive as numbers as often as strings.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


class DeliveryImportRow(BaseModel):
    """Validation for one already-shaped upload row (local field names)."""

    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    drNumber: str = Field(min_length=1)
    customerName: str = Field(min_length=1)
    serialNumber: Optional[str] = None
    status: Optional[str] = None

    @field_validator("drNumber", "customerName", "serialNumber", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _to_text(value)

    @field_validator("status")
    @classmethod
    def _canonical_status(cls, value: Optional[str]) -> Optional[str]:
        # Unrecognized statuses fall back to the default on insert.
        status = coerce_status(value)
        return status.value if status is not None else None


class DeliveryCreate(BaseModel):
    """Booking form payload; any extra delivery fields are accepted as-is."""

    model_config = ConfigDict(extra="allow")

    drNumber: Optional[str] = None
    customerName: Optional[str] = None
    status: Optional[str] = None


class DeliveryStatusUpdate(BaseModel):
    status: str = Field(min_length=1)


class DeliveryImportPayload(BaseModel):
    records: List[Dict[str, Any]]


class DeliveryImportError(BaseModel):
    row: int
    record: Dict[str, Any]
    message: str


class DeliveryImportOut(BaseModel):
    success: int
    failed: int
    queued: int = 0
    errors: List[DeliveryImportError]
    in_progress: bool = False


class DeliveryListOut(BaseModel):
    active: List[Dict[str, Any]]
    history: List[Dict[str, Any]]

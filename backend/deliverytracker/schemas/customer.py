"""Pydantic schemas for customer operations."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CustomerCreate(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    mobileNumber: Optional[str] = None
    address: Optional[str] = None
    vendorNumber: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

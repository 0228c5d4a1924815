"""Delivery ORM model (remote ``deliveries`` table)."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from deliverytracker.models.base import Base


class Delivery(Base):
    """One shipment, owned by exactly one user (``user_id``)."""

    __tablename__ = "deliveries"
    __table_args__ = (
        UniqueConstraint("dr_number", "user_id", name="uq_deliveries_dr_number_user"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    dr_number: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    vendor_number: Mapped[Optional[str]] = mapped_column(String(100))
    origin: Mapped[Optional[str]] = mapped_column(String(255))
    destination: Mapped[Optional[str]] = mapped_column(String(255))
    truck_type: Mapped[Optional[str]] = mapped_column(String(100))
    truck_plate_number: Mapped[Optional[str]] = mapped_column(String(50))
    distance: Mapped[Optional[str]] = mapped_column(String(50))
    item_number: Mapped[Optional[str]] = mapped_column(String(100))
    item_description: Mapped[Optional[str]] = mapped_column(String(1000))
    serial_number: Mapped[Optional[str]] = mapped_column(String(255))
    mobile_number: Mapped[Optional[str]] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, server_default="On Schedule", index=True
    )
    additional_costs: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=False, server_default="0"
    )
    delivery_date: Mapped[Optional[str]] = mapped_column(String(10))
    created_by: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_modified: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    # Operator-facing renderings of completed_at, stored as shown.
    completed_date: Mapped[Optional[str]] = mapped_column(String(32))
    completed_date_time: Mapped[Optional[str]] = mapped_column(String(64))
    additional_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)

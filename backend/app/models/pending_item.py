"""Pending item model: medicine owed to a patient when stock ran out."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, OrganizationScopedMixin, TimestampMixin


class PendingStatus(str, Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    DELIVERED = "DELIVERED"
    NOTIFIED = "NOTIFIED"
    CANCELLED = "CANCELLED"


class PendingItem(Base, OrganizationScopedMixin, TimestampMixin):
    __tablename__ = "pending_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id: Mapped[Optional[int]] = mapped_column(ForeignKey("warehouses.id"), nullable=True)
    prescription_id: Mapped[Optional[int]] = mapped_column(ForeignKey("prescriptions.id"), nullable=True)
    pending_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    delivered_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), default="SIN_STOCK", nullable=False)
    status: Mapped[PendingStatus] = mapped_column(
        SQLEnum(PendingStatus), default=PendingStatus.PENDING, nullable=False, index=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    patient: Mapped["Patient"] = relationship("Patient")
    product: Mapped["Product"] = relationship("Product")

    @property
    def remaining_qty(self) -> int:
        return max(self.pending_qty - self.delivered_qty, 0)


from app.models.patient import Patient
from app.models.product import Product

"""Prescription models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, OrganizationScopedMixin, TimestampMixin, utcnow


class PrescriptionStatus(str, Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class Prescription(Base, OrganizationScopedMixin, TimestampMixin):
    __tablename__ = "prescriptions"

    id: Mapped[int] = mapped_column(primary_key=True)
    prescription_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), nullable=False, index=True)
    eps_id: Mapped[Optional[int]] = mapped_column(ForeignKey("eps.id"), nullable=True, index=True)
    prescription_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    prescribing_doctor: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    mipres_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    diagnosis_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    status: Mapped[PrescriptionStatus] = mapped_column(
        SQLEnum(PrescriptionStatus), default=PrescriptionStatus.PENDING, nullable=False
    )

    patient: Mapped["Patient"] = relationship("Patient")
    eps: Mapped[Optional["EPS"]] = relationship("EPS")
    items: Mapped[list["PrescriptionItem"]] = relationship(
        "PrescriptionItem", back_populates="prescription", cascade="all, delete-orphan"
    )


class PrescriptionItem(Base):
    __tablename__ = "prescription_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    prescription_id: Mapped[int] = mapped_column(
        ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    delivered_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    dosage: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    prescription: Mapped["Prescription"] = relationship("Prescription", back_populates="items")
    product: Mapped["Product"] = relationship("Product")


from app.models.patient import EPS, Patient
from app.models.product import Product

"""Supplier and supplier scoring models."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, OrganizationScopedMixin, TimestampMixin


class Supplier(Base, OrganizationScopedMixin, TimestampMixin):
    """Supplier of medicines. ``preferred_contact`` is one of email, whatsapp, api."""

    __tablename__ = "suppliers"
    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_supplier_org_code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    nit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    contact_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    whatsapp: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    preferred_contact: Mapped[str] = mapped_column(String(20), default="email", nullable=False)
    api_endpoint: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    score: Mapped[Optional["SupplierScore"]] = relationship(
        "SupplierScore", back_populates="supplier", uselist=False, cascade="all, delete-orphan"
    )
    purchase_orders: Mapped[list["PurchaseOrder"]] = relationship(
        "PurchaseOrder", back_populates="supplier"
    )


class SupplierScore(Base, TimestampMixin):
    """Running 0-100 performance score per axis, one row per supplier."""

    __tablename__ = "supplier_scores"

    id: Mapped[int] = mapped_column(primary_key=True)
    supplier_id: Mapped[int] = mapped_column(
        ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    price_score: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    delivery_score: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    quality_score: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    payment_score: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    discount_score: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    tracking_score: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    overall_score: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    total_orders: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    on_time_deliveries: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    supplier: Mapped["Supplier"] = relationship("Supplier", back_populates="score")


from app.models.purchase import PurchaseOrder

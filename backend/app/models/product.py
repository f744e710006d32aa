"""Product (medicine) catalogue model."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, OrganizationScopedMixin, TimestampMixin


class Product(Base, OrganizationScopedMixin, TimestampMixin):
    """A medicine or supply item. ``molecule`` groups commercial presentations."""

    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_product_org_code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    molecule: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    presentation: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    concentration: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    laboratory: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    unit: Mapped[str] = mapped_column(String(20), default="UND", nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    requires_prescription: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_controlled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    min_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    inventory: Mapped[list["Inventory"]] = relationship("Inventory", back_populates="product")


from app.models.inventory import Inventory

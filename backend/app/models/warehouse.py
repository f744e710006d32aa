"""Warehouse model: dispensing points and supply warehouses."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Enum as SQLEnum, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, OrganizationScopedMixin, TimestampMixin


class WarehouseType(str, Enum):
    """DISPENSARIO hands medicine to patients; BODEGA supplies dispensaries."""

    DISPENSARIO = "DISPENSARIO"
    BODEGA = "BODEGA"


class Warehouse(Base, OrganizationScopedMixin, TimestampMixin):
    __tablename__ = "warehouses"
    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_warehouse_org_code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[WarehouseType] = mapped_column(
        SQLEnum(WarehouseType), default=WarehouseType.DISPENSARIO, nullable=False
    )
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    inventory: Mapped[list["Inventory"]] = relationship("Inventory", back_populates="warehouse")


from app.models.inventory import Inventory

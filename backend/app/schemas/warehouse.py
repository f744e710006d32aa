"""Warehouse schemas."""

from typing import Optional

from pydantic import BaseModel, Field

from app.models.warehouse import WarehouseType


class WarehouseCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    type: WarehouseType = WarehouseType.DISPENSARIO
    address: Optional[str] = None
    city: Optional[str] = None


class WarehouseUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[WarehouseType] = None
    address: Optional[str] = None
    city: Optional[str] = None
    is_active: Optional[bool] = None


class WarehouseResponse(BaseModel):
    id: int
    code: str
    name: str
    type: WarehouseType
    address: Optional[str] = None
    city: Optional[str] = None
    is_active: bool

    model_config = {"from_attributes": True}

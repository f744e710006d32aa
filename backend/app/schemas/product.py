"""Product schemas."""

from typing import Optional

from pydantic import BaseModel, Field


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    molecule: Optional[str] = None
    presentation: Optional[str] = None
    concentration: Optional[str] = None
    laboratory: Optional[str] = None
    unit: str = "UND"
    price: float = Field(0, ge=0)
    requires_prescription: bool = True
    is_controlled: bool = False
    min_stock: int = Field(0, ge=0)
    max_stock: int = Field(0, ge=0)


class ProductCreate(ProductBase):
    code: str = Field(..., min_length=1, max_length=50)


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    molecule: Optional[str] = None
    presentation: Optional[str] = None
    concentration: Optional[str] = None
    laboratory: Optional[str] = None
    unit: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    requires_prescription: Optional[bool] = None
    is_controlled: Optional[bool] = None
    min_stock: Optional[int] = Field(None, ge=0)
    max_stock: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class ProductResponse(ProductBase):
    id: int
    code: str
    is_active: bool

    model_config = {"from_attributes": True}

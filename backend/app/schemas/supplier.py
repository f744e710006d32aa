"""Supplier, quote and scoring schemas."""

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

ContactMethod = Literal["email", "whatsapp", "api"]


class SupplierBase(BaseModel):
    """Base supplier schema."""

    name: str = Field(..., min_length=1, max_length=255)
    nit: Optional[str] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    whatsapp: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    preferred_contact: ContactMethod = "email"
    api_endpoint: Optional[str] = None
    notes: Optional[str] = None


class SupplierCreate(SupplierBase):
    code: str = Field(..., min_length=1, max_length=50)


class SupplierUpdate(BaseModel):
    name: Optional[str] = None
    nit: Optional[str] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    whatsapp: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    preferred_contact: Optional[ContactMethod] = None
    api_endpoint: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class SupplierResponse(SupplierBase):
    id: int
    code: str
    is_active: bool

    model_config = {"from_attributes": True}


class SupplierScoreResponse(BaseModel):
    supplier_id: int
    price_score: int
    delivery_score: int
    quality_score: int
    payment_score: int
    discount_score: int
    tracking_score: int
    overall_score: int
    total_orders: int
    on_time_deliveries: int

    model_config = {"from_attributes": True}


class ScoreUpdateRequest(BaseModel):
    """Outcome of one order; omitted metrics leave their axis unchanged."""

    supplier_id: Optional[int] = None
    price_competitive: Optional[bool] = None
    delivered_on_time: Optional[bool] = None
    quality_ok: Optional[bool] = None
    payment_flexible: Optional[bool] = None
    discount_percent: Optional[float] = Field(None, ge=0)
    communication_good: Optional[bool] = None


class QuoteRequestItemIn(BaseModel):
    product_id: Optional[int] = None
    description: str = Field(..., min_length=1, max_length=500)
    quantity: int = Field(..., gt=0)
    unit: str = "UND"


class QuoteRequestCreate(BaseModel):
    items: List[QuoteRequestItemIn] = Field(..., min_length=1)
    supplier_ids: List[int] = []
    send_now: bool = False
    due_date: Optional[date] = None
    notes: Optional[str] = None


class QuoteItemIn(BaseModel):
    quote_request_item_id: Optional[int] = None
    unit_price: float = Field(..., ge=0)
    quantity: int = Field(..., gt=0)
    available: bool = True
    notes: Optional[str] = None


class QuoteIn(BaseModel):
    supplier_id: int
    quote_number: Optional[str] = None
    delivery_days: Optional[int] = Field(None, ge=0)
    payment_terms: Optional[str] = None
    discount_percent: float = Field(0, ge=0, le=100)
    valid_until: Optional[date] = None
    notes: Optional[str] = None
    items: List[QuoteItemIn] = []


class QuoteRequestAction(BaseModel):
    action: Literal["register_quote", "select_quote", "cancel"]
    quote: Optional[QuoteIn] = None
    quote_id: Optional[int] = None

"""Schemas for stock-moving documents: deliveries, transfers, receipts, returns, pending items."""

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class DeliveryItemIn(BaseModel):
    inventory_id: int
    quantity: int = Field(..., gt=0)
    lot_number: Optional[str] = None


class DeliveryCreate(BaseModel):
    patient_id: int
    warehouse_id: int
    items: List[DeliveryItemIn] = Field(..., min_length=1)
    eps_id: Optional[int] = None
    prescribing_doctor: Optional[str] = None
    mipres_code: Optional[str] = None
    diagnosis_code: Optional[str] = None
    moderator_fee: float = Field(0, ge=0)
    notes: Optional[str] = None


class TransferItemIn(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    lot_number: Optional[str] = None


class TransferCreate(BaseModel):
    from_warehouse_id: int
    to_warehouse_id: int
    items: List[TransferItemIn] = Field(..., min_length=1)
    notes: Optional[str] = None


class TransferAction(BaseModel):
    action: Literal["SEND", "RECEIVE", "CANCEL"]
    notes: Optional[str] = None


class ReceiptItemIn(BaseModel):
    product_id: int
    lot_number: str = Field(..., min_length=1, max_length=100)
    quantity: int = Field(..., gt=0)
    unit_cost: float = Field(0, ge=0)
    expiry_date: Optional[date] = None


class ReceiptCreate(BaseModel):
    warehouse_id: int
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    invoice_number: Optional[str] = None
    notes: Optional[str] = None
    items: List[ReceiptItemIn] = Field(..., min_length=1)


class ReturnItemIn(BaseModel):
    product_id: int
    lot_number: str = Field(..., min_length=1, max_length=100)
    quantity: int = Field(..., gt=0)
    expiry_date: Optional[date] = None
    unit_cost: float = Field(0, ge=0)


class ReturnCreate(BaseModel):
    warehouse_id: int
    patient_id: Optional[int] = None
    reason: str = "DEVOLUCION_PACIENTE"
    notes: Optional[str] = None
    items: List[ReturnItemIn] = Field(..., min_length=1)


class PendingItemCreate(BaseModel):
    patient_id: int
    product_id: int
    pending_qty: int = Field(..., gt=0)
    warehouse_id: Optional[int] = None
    prescription_id: Optional[int] = None
    reason: str = "SIN_STOCK"
    notes: Optional[str] = None


class PendingItemAction(BaseModel):
    action: Literal["DELIVER", "CANCEL", "NOTIFY"]
    delivered_qty: Optional[int] = None
    inventory_id: Optional[int] = None
    notes: Optional[str] = None

"""Medication owed to a patient when a delivery could not be completed."""

import logging
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.exceptions import InsufficientStockError, InvalidTransitionError, NotFoundError
from app.db.base import utcnow
from app.models.inventory import Inventory
from app.models.patient import Patient
from app.models.pending_item import PendingItem, PendingStatus
from app.models.product import Product
from app.models.warehouse import Warehouse
from app.schemas.dispensation import PendingItemAction, PendingItemCreate
from app.services.inventory_service import take_stock

logger = logging.getLogger(__name__)

CLOSED_STATUSES = (PendingStatus.DELIVERED, PendingStatus.CANCELLED)


def _append_note(current: Optional[str], prefix: str, note: Optional[str]) -> Optional[str]:
    if not note:
        return current
    line = f"{prefix}: {note}"
    return f"{current}\n{line}" if current else line


def status_counts(db: Session, organization_id: int) -> Dict[str, int]:
    rows = (
        db.query(PendingItem.status, func.count(PendingItem.id))
        .filter(PendingItem.organization_id == organization_id)
        .group_by(PendingItem.status)
        .all()
    )
    counts = {status.value: 0 for status in PendingStatus}
    for status, count in rows:
        counts[status.value] = count
    return counts


def create_pending_item(db: Session, organization_id: int, data: PendingItemCreate) -> PendingItem:
    patient = (
        db.query(Patient.id)
        .filter(Patient.id == data.patient_id, Patient.organization_id == organization_id)
        .first()
    )
    if not patient:
        raise NotFoundError("Paciente no encontrado")
    product = (
        db.query(Product.id)
        .filter(Product.id == data.product_id, Product.organization_id == organization_id)
        .first()
    )
    if not product:
        raise NotFoundError("Producto no encontrado")

    item = PendingItem(
        organization_id=organization_id,
        patient_id=data.patient_id,
        product_id=data.product_id,
        warehouse_id=data.warehouse_id,
        prescription_id=data.prescription_id,
        pending_qty=data.pending_qty,
        reason=data.reason or "SIN_STOCK",
        status=PendingStatus.PENDING,
        notes=data.notes,
    )
    db.add(item)
    db.flush()
    logger.info(f"Pending item {item.id}: {item.pending_qty} of product {item.product_id} for patient {item.patient_id}")
    return item


def apply_action(db: Session, item: PendingItem, action: PendingItemAction) -> PendingItem:
    if item.status in CLOSED_STATUSES:
        raise InvalidTransitionError(f"El pendiente ya está {item.status.value}")

    if action.action == "DELIVER":
        qty = action.delivered_qty or 0
        if qty <= 0:
            raise ValueError("delivered_qty es requerido para entregar")
        if qty > item.remaining_qty:
            raise ValueError(f"Cantidad mayor a la pendiente ({item.remaining_qty})")
        if action.inventory_id is not None:
            lot = (
                db.query(Inventory)
                .join(Warehouse, Inventory.warehouse_id == Warehouse.id)
                .filter(Inventory.id == action.inventory_id, Warehouse.organization_id == item.organization_id)
                .first()
            )
            if lot is None or lot.product_id != item.product_id:
                raise InsufficientStockError(f"lote {action.inventory_id}", 0, qty)
            take_stock(db, lot, qty)
        item.delivered_qty += qty
        if item.remaining_qty == 0:
            item.status = PendingStatus.DELIVERED
            item.delivered_at = utcnow()
        else:
            item.status = PendingStatus.PARTIAL
        item.notes = _append_note(item.notes, "ENTREGA", action.notes)
    elif action.action == "CANCEL":
        item.status = PendingStatus.CANCELLED
        item.notes = _append_note(item.notes, "CANCELADO", action.notes)
    elif action.action == "NOTIFY":
        item.status = PendingStatus.NOTIFIED
        item.notified_at = utcnow()
        item.notes = _append_note(item.notes, "NOTIFICADO", action.notes)

    db.flush()
    logger.info(f"Pending item {item.id} -> {item.status.value}")
    return item

"""Stock ledger operations over inventory lots.

Every quantity change in the system goes through these helpers so a lot
never goes negative and (product, warehouse, lot) stays unique.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.exceptions import InsufficientStockError
from app.models.inventory import Inventory

logger = logging.getLogger(__name__)


def find_lot(db: Session, product_id: int, warehouse_id: int, lot_number: str) -> Optional[Inventory]:
    return (
        db.query(Inventory)
        .filter(
            Inventory.product_id == product_id,
            Inventory.warehouse_id == warehouse_id,
            Inventory.lot_number == lot_number,
        )
        .first()
    )


def add_stock(
    db: Session,
    product_id: int,
    warehouse_id: int,
    lot_number: str,
    quantity: int,
    expiry_date: Optional[date] = None,
    unit_cost: Optional[Decimal] = None,
) -> Inventory:
    """Increment a lot, creating it when it does not exist yet.

    An existing lot keeps its expiry date unless it had none; a non-zero
    ``unit_cost`` replaces the stored one.
    """
    if quantity <= 0:
        raise ValueError("La cantidad debe ser mayor a 0")

    lot = find_lot(db, product_id, warehouse_id, lot_number)
    if lot is None:
        lot = Inventory(
            product_id=product_id,
            warehouse_id=warehouse_id,
            lot_number=lot_number,
            expiry_date=expiry_date,
            quantity=quantity,
            unit_cost=unit_cost or Decimal("0"),
        )
        db.add(lot)
        db.flush()
        logger.debug(f"Created lot {lot_number} for product {product_id} in warehouse {warehouse_id}")
        return lot

    lot.quantity += quantity
    if lot.expiry_date is None and expiry_date is not None:
        lot.expiry_date = expiry_date
    if unit_cost:
        lot.unit_cost = unit_cost
    db.flush()
    return lot


def take_stock(db: Session, lot: Inventory, quantity: int) -> Inventory:
    """Decrement one lot. Raises InsufficientStockError and leaves it untouched if short."""
    if quantity <= 0:
        raise ValueError("La cantidad debe ser mayor a 0")
    if lot.quantity < quantity:
        raise InsufficientStockError(f"lote {lot.lot_number}", lot.quantity, quantity)
    lot.quantity -= quantity
    db.flush()
    return lot


def available_quantity(
    db: Session,
    product_id: int,
    warehouse_id: int,
    lot_number: Optional[str] = None,
) -> int:
    query = db.query(func.coalesce(func.sum(Inventory.quantity), 0)).filter(
        Inventory.product_id == product_id,
        Inventory.warehouse_id == warehouse_id,
    )
    if lot_number:
        query = query.filter(Inventory.lot_number == lot_number)
    return int(query.scalar() or 0)


def take_stock_fefo(
    db: Session, product_id: int, warehouse_id: int, quantity: int
) -> List[Tuple[Inventory, int]]:
    """Decrement ``quantity`` across lots, earliest expiry first.

    Returns the (lot, taken) pairs. Nothing changes when the warehouse is short.
    """
    available = available_quantity(db, product_id, warehouse_id)
    if available < quantity:
        raise InsufficientStockError(f"producto {product_id}", available, quantity)

    lots = (
        db.query(Inventory)
        .filter(
            Inventory.product_id == product_id,
            Inventory.warehouse_id == warehouse_id,
            Inventory.quantity > 0,
        )
        # NULL expiry sorts last
        .order_by(Inventory.expiry_date.is_(None), Inventory.expiry_date, Inventory.id)
        .all()
    )

    taken: List[Tuple[Inventory, int]] = []
    remaining = quantity
    for lot in lots:
        if remaining == 0:
            break
        qty = min(lot.quantity, remaining)
        lot.quantity -= qty
        remaining -= qty
        taken.append((lot, qty))
    db.flush()
    return taken

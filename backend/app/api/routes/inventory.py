"""Inventory (stock on hand) routes."""

from collections import OrderedDict
from typing import Optional

from fastapi import APIRouter, Request
from sqlalchemy import or_
from sqlalchemy.orm import selectinload

from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser
from app.core.responses import list_response
from app.db.session import DbSession
from app.models.inventory import Inventory
from app.models.product import Product
from app.models.warehouse import Warehouse

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def list_inventory(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    warehouse_id: Optional[int] = None,
    eps_code: Optional[str] = None,
    search: Optional[str] = None,
):
    """Lots with stock, grouped by product and warehouse."""
    query = (
        db.query(Inventory)
        .join(Warehouse, Inventory.warehouse_id == Warehouse.id)
        .join(Product, Inventory.product_id == Product.id)
        .options(selectinload(Inventory.product), selectinload(Inventory.warehouse))
        .filter(Warehouse.organization_id == current_user.organization_id, Inventory.quantity > 0)
    )
    if warehouse_id is not None:
        query = query.filter(Inventory.warehouse_id == warehouse_id)
    if eps_code:
        query = query.filter(Warehouse.code.startswith(eps_code))
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(Product.name.ilike(pattern), Product.code.ilike(pattern), Product.molecule.ilike(pattern))
        )
    lots = query.order_by(Product.name, Warehouse.name, Inventory.expiry_date).all()

    groups: "OrderedDict[tuple, dict]" = OrderedDict()
    for lot in lots:
        key = (lot.product_id, lot.warehouse_id)
        group = groups.get(key)
        if group is None:
            group = groups[key] = {
                "product_id": lot.product_id,
                "product_code": lot.product.code,
                "product_name": lot.product.name,
                "molecule": lot.product.molecule,
                "warehouse_id": lot.warehouse_id,
                "warehouse_name": lot.warehouse.name,
                "total_quantity": 0,
                "lots": [],
            }
        group["total_quantity"] += lot.quantity
        group["lots"].append({
            "id": lot.id,
            "lot_number": lot.lot_number,
            "expiry_date": lot.expiry_date.isoformat() if lot.expiry_date else None,
            "quantity": lot.quantity,
            "unit_cost": float(lot.unit_cost or 0),
        })
    return list_response(list(groups.values()))

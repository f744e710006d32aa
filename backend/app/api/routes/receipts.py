"""Goods receipt routes."""

from typing import Optional

from fastapi import APIRouter, Request, status
from sqlalchemy.orm import selectinload

from app.core.exceptions import service_errors
from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser, RequireOperator
from app.core.responses import list_response
from app.db.session import DbSession
from app.models.inventory import Inventory
from app.models.purchase import PurchaseOrder, PurchaseReceipt, ReceiptItem
from app.schemas.dispensation import ReceiptCreate
from app.services.audit_service import CREATE, client_ip, log_action
from app.services.receipt_service import create_receipt

router = APIRouter()


def receipt_dict(receipt: PurchaseReceipt) -> dict:
    order = receipt.purchase_order
    return {
        "id": receipt.id,
        "receipt_date": receipt.receipt_date.isoformat(),
        "invoice_number": receipt.invoice_number,
        "order_number": order.order_number,
        "supplier_id": order.supplier_id,
        "supplier_name": order.supplier.name,
        "warehouse_id": receipt.warehouse_id,
        "warehouse_name": receipt.warehouse.name,
        "notes": receipt.notes,
        "total_units": sum(i.quantity for i in receipt.items),
        "total_value": float(sum(i.quantity * (i.unit_cost or 0) for i in receipt.items)),
        "items": [
            {
                "id": i.id,
                "inventory_id": i.inventory_id,
                "product_id": i.inventory.product_id,
                "product_name": i.inventory.product.name,
                "lot_number": i.inventory.lot_number,
                "expiry_date": i.inventory.expiry_date.isoformat() if i.inventory.expiry_date else None,
                "quantity": i.quantity,
                "unit_cost": float(i.unit_cost or 0),
            }
            for i in receipt.items
        ],
    }


@router.get("/")
@limiter.limit("60/minute")
def list_receipts(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    warehouse_id: Optional[int] = None,
    limit: int = 50,
):
    query = (
        db.query(PurchaseReceipt)
        .options(
            selectinload(PurchaseReceipt.items).selectinload(ReceiptItem.inventory).selectinload(Inventory.product),
            selectinload(PurchaseReceipt.purchase_order).selectinload(PurchaseOrder.supplier),
            selectinload(PurchaseReceipt.warehouse),
        )
        .filter(PurchaseReceipt.organization_id == current_user.organization_id)
    )
    if warehouse_id is not None:
        query = query.filter(PurchaseReceipt.warehouse_id == warehouse_id)
    receipts = query.order_by(PurchaseReceipt.receipt_date.desc(), PurchaseReceipt.id.desc()).limit(min(limit, 500)).all()
    return list_response([receipt_dict(r) for r in receipts])


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_receipt_route(request: Request, body: ReceiptCreate, db: DbSession, current_user: RequireOperator):
    """Receive goods into a warehouse; the supplier is created on first use by name."""
    with service_errors(db):
        receipt = create_receipt(db, current_user.organization_id, body, current_user.user_id)
    log_action(
        db, current_user.organization_id, CREATE, "receipt", receipt.id,
        user_id=current_user.user_id,
        new_values={"warehouse_id": body.warehouse_id, "items": len(body.items)},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(receipt)
    return receipt_dict(receipt)

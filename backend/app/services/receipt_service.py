"""Goods receipts and patient returns: the two documents that add stock."""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.product import Product
from app.models.purchase import PurchaseOrder, PurchaseOrderStatus, PurchaseReceipt, ReceiptItem
from app.models.returns import InventoryReturn, ReturnItem
from app.models.supplier import Supplier
from app.models.warehouse import Warehouse
from app.schemas.dispensation import ReceiptCreate, ReturnCreate
from app.services.inventory_service import add_stock
from app.services.numbering import next_number
from app.services.supplier_scoring_service import new_score

logger = logging.getLogger(__name__)

DEFAULT_SUPPLIER_NAME = "Proveedor General"


def _check_warehouse(db: Session, organization_id: int, warehouse_id: int) -> None:
    exists = (
        db.query(Warehouse.id)
        .filter(Warehouse.id == warehouse_id, Warehouse.organization_id == organization_id)
        .first()
    )
    if not exists:
        raise NotFoundError("Bodega no encontrada")


def _check_products(db: Session, organization_id: int, product_ids) -> None:
    wanted = set(product_ids)
    found = {
        pid for (pid,) in db.query(Product.id).filter(
            Product.id.in_(wanted), Product.organization_id == organization_id
        )
    }
    if wanted - found:
        raise NotFoundError("Producto no encontrado")


def resolve_supplier(
    db: Session,
    organization_id: int,
    supplier_id: Optional[int] = None,
    supplier_name: Optional[str] = None,
) -> Supplier:
    """Supplier by id, else by exact name, else a new one with that name."""
    if supplier_id is not None:
        supplier = (
            db.query(Supplier)
            .filter(Supplier.id == supplier_id, Supplier.organization_id == organization_id)
            .first()
        )
        if not supplier:
            raise NotFoundError("Proveedor no encontrado")
        return supplier

    name = (supplier_name or "").strip() or DEFAULT_SUPPLIER_NAME
    supplier = (
        db.query(Supplier)
        .filter(Supplier.organization_id == organization_id, Supplier.name == name)
        .first()
    )
    if supplier:
        return supplier

    supplier = Supplier(
        organization_id=organization_id,
        code=next_number(db, Supplier, organization_id, "PROV", width=4),
        name=name,
    )
    db.add(supplier)
    db.flush()
    db.add(new_score(supplier.id))
    logger.info(f"Supplier '{name}' created from receipt in organization {organization_id}")
    return supplier


def create_receipt(
    db: Session, organization_id: int, data: ReceiptCreate, user_id: Optional[int] = None
) -> PurchaseReceipt:
    _check_warehouse(db, organization_id, data.warehouse_id)
    _check_products(db, organization_id, [i.product_id for i in data.items])
    supplier = resolve_supplier(db, organization_id, data.supplier_id, data.supplier_name)

    total = sum(Decimal(str(i.unit_cost)) * i.quantity for i in data.items)
    order = PurchaseOrder(
        organization_id=organization_id,
        order_number=next_number(db, PurchaseOrder, organization_id, "ORD"),
        supplier_id=supplier.id,
        status=PurchaseOrderStatus.RECEIVED,
        total_amount=total,
        notes=data.notes,
    )
    db.add(order)
    db.flush()

    receipt = PurchaseReceipt(
        organization_id=organization_id,
        purchase_order_id=order.id,
        warehouse_id=data.warehouse_id,
        invoice_number=data.invoice_number,
        received_by_id=user_id,
        notes=data.notes,
    )
    for item in data.items:
        unit_cost = Decimal(str(item.unit_cost))
        lot = add_stock(
            db,
            product_id=item.product_id,
            warehouse_id=data.warehouse_id,
            lot_number=item.lot_number,
            quantity=item.quantity,
            expiry_date=item.expiry_date,
            unit_cost=unit_cost,
        )
        receipt.items.append(ReceiptItem(inventory_id=lot.id, quantity=item.quantity, unit_cost=unit_cost))
    db.add(receipt)
    db.flush()
    logger.info(f"Receipt {receipt.id} ({order.order_number}) into warehouse {data.warehouse_id}")
    return receipt


def create_return(
    db: Session, organization_id: int, data: ReturnCreate, user_id: Optional[int] = None
) -> InventoryReturn:
    _check_warehouse(db, organization_id, data.warehouse_id)
    _check_products(db, organization_id, [i.product_id for i in data.items])

    inventory_return = InventoryReturn(
        organization_id=organization_id,
        return_number=next_number(db, InventoryReturn, organization_id, "DEV"),
        warehouse_id=data.warehouse_id,
        patient_id=data.patient_id,
        reason=data.reason or "DEVOLUCION_PACIENTE",
        status="COMPLETED",
        created_by_id=user_id,
        notes=data.notes,
    )
    for item in data.items:
        unit_cost = Decimal(str(item.unit_cost))
        add_stock(
            db,
            product_id=item.product_id,
            warehouse_id=data.warehouse_id,
            lot_number=item.lot_number,
            quantity=item.quantity,
            expiry_date=item.expiry_date,
            unit_cost=unit_cost,
        )
        inventory_return.items.append(
            ReturnItem(
                product_id=item.product_id,
                lot_number=item.lot_number,
                expiry_date=item.expiry_date,
                quantity=item.quantity,
                unit_cost=unit_cost,
            )
        )
    db.add(inventory_return)
    db.flush()
    logger.info(f"Return {inventory_return.return_number} into warehouse {data.warehouse_id}")
    return inventory_return

"""Consumption rotation: restock alerts and per-molecule rotation reports."""

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.delivery import Delivery, DeliveryItem, DeliveryStatus
from app.models.inventory import Inventory
from app.models.product import Product
from app.models.warehouse import Warehouse, WarehouseType

logger = logging.getLogger(__name__)

ROTATION_WINDOW_DAYS = 28
WEEKS_IN_WINDOW = 4


@dataclass
class RotationAlert:
    """Restock alert for one product at one dispensary.

    ``warning`` means a bodega can cover it through a transfer, ``danger``
    means no bodega has stock and a purchase is needed.
    """

    type: str
    message: str
    href: str
    action: str
    warehouse_id: int
    product_id: int
    current_stock: int
    weekly_rotation: float
    supply_available: int

    def to_dict(self) -> dict:
        return asdict(self)


def _consumption_by_product(db: Session, warehouse_id: int, since: datetime) -> Dict[int, int]:
    rows = (
        db.query(DeliveryItem.product_id, func.sum(DeliveryItem.quantity))
        .join(Delivery, DeliveryItem.delivery_id == Delivery.id)
        .filter(
            Delivery.warehouse_id == warehouse_id,
            Delivery.status == DeliveryStatus.COMPLETED,
            Delivery.delivery_date >= since,
        )
        .group_by(DeliveryItem.product_id)
        .all()
    )
    return {product_id: int(total or 0) for product_id, total in rows}


def _stock_by_product(db: Session, warehouse_ids: List[int]) -> Dict[int, int]:
    if not warehouse_ids:
        return {}
    rows = (
        db.query(Inventory.product_id, func.sum(Inventory.quantity))
        .filter(Inventory.warehouse_id.in_(warehouse_ids), Inventory.quantity > 0)
        .group_by(Inventory.product_id)
        .all()
    )
    return {product_id: int(total or 0) for product_id, total in rows}


def build_alert(
    warehouse: Warehouse,
    product: Product,
    current_stock: int,
    consumed: int,
    supply_available: int,
) -> Optional[RotationAlert]:
    """Return an alert when stock covers one week of rotation or less, else None."""
    weekly_rotation = consumed / WEEKS_IN_WINDOW
    if weekly_rotation <= 0 or current_stock > weekly_rotation:
        return None

    if supply_available > 0:
        return RotationAlert(
            type="warning",
            message=(
                f"Stock bajo de {product.name} en {warehouse.name}. "
                f"Reponer desde Bodega (Disp: {supply_available})"
            ),
            href=f"/traslados/nuevo?from=BODEGA&to={warehouse.id}&product={product.id}",
            action="TRANSFER",
            warehouse_id=warehouse.id,
            product_id=product.id,
            current_stock=current_stock,
            weekly_rotation=weekly_rotation,
            supply_available=supply_available,
        )
    return RotationAlert(
        type="danger",
        message=f"AGOTADO: {product.name} en {warehouse.name} y Bodegas. Solicitar COMPRA.",
        href=f"/compras/nueva?product={product.id}",
        action="PURCHASE",
        warehouse_id=warehouse.id,
        product_id=product.id,
        current_stock=current_stock,
        weekly_rotation=weekly_rotation,
        supply_available=0,
    )


def generate_rotation_alerts(
    db: Session,
    organization_id: int,
    warehouse_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[RotationAlert]:
    """Compare each dispensary's stock against its 28-day rotation.

    Read-only. Danger alerts come first, then the lowest coverage.
    """
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=ROTATION_WINDOW_DAYS)

    monitored = db.query(Warehouse).filter(
        Warehouse.organization_id == organization_id,
        Warehouse.is_active.is_(True),
        Warehouse.type == WarehouseType.DISPENSARIO,
    )
    if warehouse_id is not None:
        monitored = monitored.filter(Warehouse.id == warehouse_id)
    monitored = monitored.order_by(Warehouse.name).all()
    if not monitored:
        return []

    bodega_ids = [
        wid for (wid,) in db.query(Warehouse.id).filter(
            Warehouse.organization_id == organization_id,
            Warehouse.is_active.is_(True),
            Warehouse.type == WarehouseType.BODEGA,
        )
    ]
    supply = _stock_by_product(db, bodega_ids)

    alerts: List[RotationAlert] = []
    for warehouse in monitored:
        consumption = _consumption_by_product(db, warehouse.id, since)
        if not consumption:
            continue
        stock = _stock_by_product(db, [warehouse.id])
        products = {
            p.id: p for p in db.query(Product).filter(Product.id.in_(list(consumption))).all()
        }
        for product_id, consumed in consumption.items():
            product = products.get(product_id)
            if product is None:
                continue
            alert = build_alert(
                warehouse, product, stock.get(product_id, 0), consumed, supply.get(product_id, 0)
            )
            if alert is not None:
                alerts.append(alert)

    alerts.sort(key=lambda a: (a.type != "danger", a.current_stock / a.weekly_rotation))
    logger.debug(f"Rotation alerts for organization {organization_id}: {len(alerts)}")
    return alerts


def days_in_range(start: date, end: date) -> int:
    """Whole days covered from the start of ``start`` to the end of ``end``."""
    return max(abs((end - start).days) + 1, 1)


def average_rotation(total_quantity: int, days: int, period: str) -> float:
    if period == "week":
        divisor = max(days / 7, 1)
    elif period == "month":
        divisor = max(days / 30, 1)
    else:
        divisor = days
    return round(total_quantity / divisor, 2)


def molecule_rotation_report(
    db: Session,
    organization_id: int,
    period: str = "day",
    start: Optional[date] = None,
    end: Optional[date] = None,
    molecule: Optional[str] = None,
    warehouse_id: Optional[int] = None,
) -> dict:
    """Completed dispensations per molecule, averaged per day, week or month."""
    end = end or datetime.now(timezone.utc).date()
    start = start or end - timedelta(days=30)
    days = days_in_range(start, end)

    start_dt = datetime.combine(start, time.min, tzinfo=timezone.utc)
    end_dt = datetime.combine(end, time.max, tzinfo=timezone.utc)

    total = func.sum(DeliveryItem.quantity).label("total_quantity")
    query = (
        db.query(Product.molecule, total)
        .join(DeliveryItem, DeliveryItem.product_id == Product.id)
        .join(Delivery, DeliveryItem.delivery_id == Delivery.id)
        .filter(
            Delivery.organization_id == organization_id,
            Delivery.status == DeliveryStatus.COMPLETED,
            Delivery.delivery_date >= start_dt,
            Delivery.delivery_date <= end_dt,
            Product.molecule.isnot(None),
        )
    )
    if molecule and molecule != "all":
        query = query.filter(Product.molecule == molecule)
    if warehouse_id is not None:
        query = query.filter(Delivery.warehouse_id == warehouse_id)
    rows = query.group_by(Product.molecule).order_by(total.desc()).all()

    return {
        "items": [
            {
                "molecule": mol,
                "total_quantity": int(qty or 0),
                "average_rotation": average_rotation(int(qty or 0), days, period),
            }
            for mol, qty in rows
        ],
        "meta": {
            "period": period,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "days_in_range": days,
        },
    }

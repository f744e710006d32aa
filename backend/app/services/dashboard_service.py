"""Dashboard statistics and the alert strip shown on the home screen."""

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.models.delivery import Delivery
from app.models.inventory import Inventory
from app.models.pending_item import PendingItem, PendingStatus
from app.models.prescription import Prescription
from app.models.product import Product
from app.models.warehouse import Warehouse
from app.services.rotation_service import generate_rotation_alerts

logger = logging.getLogger(__name__)

EXPIRY_HORIZON_DAYS = 30
RECENT_DELIVERIES = 5
MAX_ROTATION_ALERTS = 5
LOW_STOCK_ALERT_ROOM = 5
MAX_ALERTS = 8


class DashboardService:
    def __init__(self, db: Session, organization_id: int, now: Optional[datetime] = None):
        self.db = db
        self.organization_id = organization_id
        self.now = now or datetime.now(timezone.utc)

    def _deliveries(self, warehouse_id: Optional[int]):
        query = self.db.query(func.count(Delivery.id)).filter(
            Delivery.organization_id == self.organization_id
        )
        if warehouse_id is not None:
            query = query.filter(Delivery.warehouse_id == warehouse_id)
        return query

    def _inventory(self, warehouse_id: Optional[int]):
        query = (
            self.db.query(Inventory)
            .join(Warehouse, Inventory.warehouse_id == Warehouse.id)
            .filter(Warehouse.organization_id == self.organization_id, Inventory.quantity > 0)
        )
        if warehouse_id is not None:
            query = query.filter(Inventory.warehouse_id == warehouse_id)
        return query

    def low_stock_count(self) -> int:
        """Active products with a minimum configured whose total stock is at or below it."""
        stock = (
            self.db.query(Inventory.product_id, func.sum(Inventory.quantity).label("total"))
            .group_by(Inventory.product_id)
            .subquery()
        )
        return (
            self.db.query(func.count(Product.id))
            .outerjoin(stock, stock.c.product_id == Product.id)
            .filter(
                Product.organization_id == self.organization_id,
                Product.is_active.is_(True),
                Product.min_stock > 0,
                func.coalesce(stock.c.total, 0) <= Product.min_stock,
            )
            .scalar()
        ) or 0

    def stats(self, warehouse_id: Optional[int] = None) -> Dict[str, Any]:
        start_of_day = datetime.combine(self.now.date(), time.min)
        start_of_month = start_of_day.replace(day=1)
        today = self.now.date()

        inventory_value = (
            self._inventory(warehouse_id)
            .with_entities(func.coalesce(func.sum(Inventory.quantity * Inventory.unit_cost), 0))
            .scalar()
        )
        pending = self.db.query(func.count(PendingItem.id)).filter(
            PendingItem.organization_id == self.organization_id,
            PendingItem.status == PendingStatus.PENDING,
        )
        if warehouse_id is not None:
            pending = pending.filter(PendingItem.warehouse_id == warehouse_id)

        expiring = (
            self._inventory(warehouse_id)
            .filter(
                Inventory.expiry_date.isnot(None),
                Inventory.expiry_date >= today,
                Inventory.expiry_date <= today + timedelta(days=EXPIRY_HORIZON_DAYS),
            )
            .count()
        )

        return {
            "total_products": self.db.query(func.count(Product.id))
            .filter(Product.organization_id == self.organization_id, Product.is_active.is_(True))
            .scalar() or 0,
            "total_warehouses": self.db.query(func.count(Warehouse.id))
            .filter(Warehouse.organization_id == self.organization_id, Warehouse.is_active.is_(True))
            .scalar() or 0,
            "total_inventory_value": round(float(inventory_value or 0)),
            "deliveries_today": self._deliveries(warehouse_id)
            .filter(Delivery.delivery_date >= start_of_day).scalar() or 0,
            "deliveries_month": self._deliveries(warehouse_id)
            .filter(Delivery.delivery_date >= start_of_month).scalar() or 0,
            "pending_items": pending.scalar() or 0,
            "expiring_items": expiring,
            "low_stock_items": self.low_stock_count(),
        }

    def recent_deliveries(self, warehouse_id: Optional[int] = None) -> List[Dict[str, Any]]:
        query = (
            self.db.query(Delivery)
            .options(
                selectinload(Delivery.prescription).selectinload(Prescription.patient),
                selectinload(Delivery.warehouse),
                selectinload(Delivery.items),
            )
            .filter(Delivery.organization_id == self.organization_id)
        )
        if warehouse_id is not None:
            query = query.filter(Delivery.warehouse_id == warehouse_id)
        deliveries = query.order_by(Delivery.delivery_date.desc(), Delivery.id.desc()).limit(RECENT_DELIVERIES)
        return [
            {
                "id": d.id,
                "patient_name": d.prescription.patient.name if d.prescription else "Sin paciente",
                "warehouse": d.warehouse.name,
                "items_count": len(d.items),
                "date": d.delivery_date.isoformat(),
                "status": d.status.value,
            }
            for d in deliveries
        ]

    def alerts(self, stats: Dict[str, Any], warehouse_id: Optional[int] = None) -> List[Dict[str, Any]]:
        rotation = generate_rotation_alerts(self.db, self.organization_id, warehouse_id, now=self.now)
        alerts = [
            {"type": a.type, "message": a.message, "href": a.href, "is_smart": True}
            for a in rotation[:MAX_ROTATION_ALERTS]
        ]
        if stats["pending_items"] > 0:
            alerts.append({
                "type": "warning",
                "message": f"{stats['pending_items']} medicamentos pendientes de entrega",
                "href": "/pendientes",
            })
        if stats["expiring_items"] > 0:
            alerts.append({
                "type": "danger",
                "message": f"{stats['expiring_items']} lotes próximos a vencer",
                "href": "/inventario",
            })
        if stats["low_stock_items"] > 0 and len(alerts) < LOW_STOCK_ALERT_ROOM:
            alerts.append({
                "type": "info",
                "message": f"{stats['low_stock_items']} productos bajo mínimo configurado",
                "href": "/inventario",
            })
        return alerts[:MAX_ALERTS]

    def summary(self, warehouse_id: Optional[int] = None) -> Dict[str, Any]:
        stats = self.stats(warehouse_id)
        return {
            "stats": stats,
            "recent_deliveries": self.recent_deliveries(warehouse_id),
            "alerts": self.alerts(stats, warehouse_id),
        }

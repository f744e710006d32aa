"""Kardex: the chronological stock movement card per product and warehouse.

Movements come from receipts, returns, deliveries and transfers. The
running balance accumulates from the oldest movement forward, and the
list is then returned newest first.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timezone
from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from app.models.delivery import Delivery, DeliveryItem, DeliveryStatus
from app.models.inventory import Inventory
from app.models.prescription import Prescription
from app.models.purchase import PurchaseReceipt, ReceiptItem
from app.models.returns import InventoryReturn, ReturnItem
from app.models.transfer import Transfer, TransferItem, TransferStatus

logger = logging.getLogger(__name__)

MAX_MOVEMENTS = 100

ENTRADA = "ENTRADA"
DEVOLUCION = "DEVOLUCION"
SALIDA = "SALIDA"
TRASLADO_SALIDA = "TRASLADO_SALIDA"
TRASLADO_ENTRADA = "TRASLADO_ENTRADA"


@dataclass
class KardexMovement:
    key: str
    date: datetime
    type: str
    reference: str
    description: str
    product_id: int
    product_code: str
    product_name: str
    warehouse_id: int
    warehouse_name: str
    lot_number: Optional[str]
    quantity_in: int
    quantity_out: int
    unit_cost: float
    balance: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data


def _naive(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; compare everything as naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _in_window(value: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    value = _naive(value)
    if start is not None and value < _naive(start):
        return False
    if end is not None and value > _naive(end):
        return False
    return True


class KardexService:
    def __init__(self, db: Session, organization_id: int):
        self.db = db
        self.organization_id = organization_id

    def _receipts(self, product_id, warehouse_id) -> List[KardexMovement]:
        query = (
            self.db.query(PurchaseReceipt)
            .options(
                selectinload(PurchaseReceipt.items)
                .selectinload(ReceiptItem.inventory)
                .selectinload(Inventory.product),
                selectinload(PurchaseReceipt.warehouse),
            )
            .filter(PurchaseReceipt.organization_id == self.organization_id)
        )
        if warehouse_id is not None:
            query = query.filter(PurchaseReceipt.warehouse_id == warehouse_id)

        out = []
        for receipt in query.all():
            for item in receipt.items:
                lot = item.inventory
                if product_id is not None and lot.product_id != product_id:
                    continue
                out.append(KardexMovement(
                    key=f"rc-{item.id}",
                    date=receipt.receipt_date,
                    type=ENTRADA,
                    reference=receipt.invoice_number or "SIN-REF",
                    description=f"Entrada: {receipt.notes or 'Sin notas'}",
                    product_id=lot.product_id,
                    product_code=lot.product.code,
                    product_name=lot.product.name,
                    warehouse_id=receipt.warehouse_id,
                    warehouse_name=receipt.warehouse.name,
                    lot_number=lot.lot_number,
                    quantity_in=item.quantity,
                    quantity_out=0,
                    unit_cost=float(item.unit_cost or 0),
                ))
        return out

    def _returns(self, product_id, warehouse_id) -> List[KardexMovement]:
        query = (
            self.db.query(InventoryReturn)
            .options(
                selectinload(InventoryReturn.items).selectinload(ReturnItem.product),
                selectinload(InventoryReturn.warehouse),
            )
            .filter(InventoryReturn.organization_id == self.organization_id)
        )
        if warehouse_id is not None:
            query = query.filter(InventoryReturn.warehouse_id == warehouse_id)

        out = []
        for ret in query.all():
            for item in ret.items:
                if product_id is not None and item.product_id != product_id:
                    continue
                out.append(KardexMovement(
                    key=f"rt-{item.id}",
                    date=ret.return_date,
                    type=DEVOLUCION,
                    reference=ret.return_number,
                    description=f"Devolución: {ret.reason}",
                    product_id=item.product_id,
                    product_code=item.product.code,
                    product_name=item.product.name,
                    warehouse_id=ret.warehouse_id,
                    warehouse_name=ret.warehouse.name,
                    lot_number=item.lot_number,
                    quantity_in=item.quantity,
                    quantity_out=0,
                    unit_cost=float(item.unit_cost or 0),
                ))
        return out

    def _deliveries(self, product_id, warehouse_id) -> List[KardexMovement]:
        query = (
            self.db.query(Delivery)
            .options(
                selectinload(Delivery.items).selectinload(DeliveryItem.product),
                selectinload(Delivery.warehouse),
                selectinload(Delivery.prescription).selectinload(Prescription.patient),
            )
            .filter(
                Delivery.organization_id == self.organization_id,
                Delivery.status == DeliveryStatus.COMPLETED,
            )
        )
        if warehouse_id is not None:
            query = query.filter(Delivery.warehouse_id == warehouse_id)

        out = []
        for delivery in query.all():
            patient = delivery.prescription.patient if delivery.prescription else None
            for item in delivery.items:
                if product_id is not None and item.product_id != product_id:
                    continue
                out.append(KardexMovement(
                    key=f"dl-{item.id}",
                    date=delivery.delivery_date,
                    type=SALIDA,
                    reference=f"DEL-{delivery.id}",
                    description=f"Entrega: {patient.name if patient else 'Paciente'}",
                    product_id=item.product_id,
                    product_code=item.product.code,
                    product_name=item.product.name,
                    warehouse_id=delivery.warehouse_id,
                    warehouse_name=delivery.warehouse.name,
                    lot_number=item.lot_number,
                    quantity_in=0,
                    quantity_out=item.quantity,
                    unit_cost=float(item.unit_cost or 0),
                ))
        return out

    def _transfers(self, product_id, warehouse_id) -> List[KardexMovement]:
        query = (
            self.db.query(Transfer)
            .options(
                selectinload(Transfer.items).selectinload(TransferItem.product),
                selectinload(Transfer.from_warehouse),
                selectinload(Transfer.to_warehouse),
            )
            .filter(
                Transfer.organization_id == self.organization_id,
                Transfer.status.in_([TransferStatus.IN_TRANSIT, TransferStatus.RECEIVED]),
            )
        )

        out = []
        for transfer in query.all():
            for item in transfer.items:
                if product_id is not None and item.product_id != product_id:
                    continue
                if warehouse_id is None or warehouse_id == transfer.from_warehouse_id:
                    out.append(KardexMovement(
                        key=f"tr-{item.id}-out",
                        date=transfer.sent_at or transfer.created_at,
                        type=TRASLADO_SALIDA,
                        reference=transfer.transfer_number,
                        description=f"Traslado a {transfer.to_warehouse.name}",
                        product_id=item.product_id,
                        product_code=item.product.code,
                        product_name=item.product.name,
                        warehouse_id=transfer.from_warehouse_id,
                        warehouse_name=transfer.from_warehouse.name,
                        lot_number=item.lot_number,
                        quantity_in=0,
                        quantity_out=item.quantity,
                        unit_cost=float(item.unit_cost or 0),
                    ))
                if transfer.status == TransferStatus.RECEIVED and (
                    warehouse_id is None or warehouse_id == transfer.to_warehouse_id
                ):
                    out.append(KardexMovement(
                        key=f"tr-{item.id}-in",
                        date=transfer.received_at or transfer.created_at,
                        type=TRASLADO_ENTRADA,
                        reference=transfer.transfer_number,
                        description=f"Traslado desde {transfer.from_warehouse.name}",
                        product_id=item.product_id,
                        product_code=item.product.code,
                        product_name=item.product.name,
                        warehouse_id=transfer.to_warehouse_id,
                        warehouse_name=transfer.to_warehouse.name,
                        lot_number=item.lot_number,
                        quantity_in=item.quantity,
                        quantity_out=0,
                        unit_cost=float(item.unit_cost or 0),
                    ))
        return out

    def movements(
        self,
        product_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> dict:
        start = datetime.combine(date_from, time.min) if date_from else None
        end = datetime.combine(date_to, time.max) if date_to else None

        movements = (
            self._receipts(product_id, warehouse_id)
            + self._returns(product_id, warehouse_id)
            + self._deliveries(product_id, warehouse_id)
            + self._transfers(product_id, warehouse_id)
        )
        movements = [m for m in movements if _in_window(m.date, start, end)]

        # Oldest first to accumulate; entries before exits on the same instant
        movements.sort(key=lambda m: (_naive(m.date), m.quantity_in == 0, m.key))
        balance = 0
        for movement in movements:
            balance += movement.quantity_in - movement.quantity_out
            movement.balance = balance
        movements.reverse()

        return {
            "movements": [m.to_dict() for m in movements[:MAX_MOVEMENTS]],
            "total_movements": len(movements),
        }

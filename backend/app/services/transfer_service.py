"""Warehouse-to-warehouse transfers.

PENDING -> IN_TRANSIT -> RECEIVED, with CANCELLED reachable from any state
except RECEIVED. Stock leaves the source on SEND and reaches the destination
on RECEIVE.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.core.exceptions import InsufficientStockError, InvalidTransitionError, NotFoundError
from app.db.base import utcnow
from app.models.transfer import Transfer, TransferItem, TransferStatus
from app.models.warehouse import Warehouse
from app.schemas.dispensation import TransferCreate
from app.services.inventory_service import add_stock, available_quantity, find_lot, take_stock, take_stock_fefo
from app.services.numbering import next_number

logger = logging.getLogger(__name__)


class TransferService:
    def __init__(self, db: Session, organization_id: int):
        self.db = db
        self.organization_id = organization_id

    def get(self, transfer_id: int) -> Transfer:
        transfer = (
            self.db.query(Transfer)
            .filter(Transfer.id == transfer_id, Transfer.organization_id == self.organization_id)
            .first()
        )
        if not transfer:
            raise NotFoundError("Traslado no encontrado")
        return transfer

    def _check_warehouse(self, warehouse_id: int) -> None:
        exists = (
            self.db.query(Warehouse.id)
            .filter(Warehouse.id == warehouse_id, Warehouse.organization_id == self.organization_id)
            .first()
        )
        if not exists:
            raise NotFoundError("Bodega no encontrada")

    def create(self, data: TransferCreate, user_id: Optional[int] = None) -> Transfer:
        if data.from_warehouse_id == data.to_warehouse_id:
            raise ValueError("La bodega de origen y destino no pueden ser la misma")
        self._check_warehouse(data.from_warehouse_id)
        self._check_warehouse(data.to_warehouse_id)

        needed: dict = {}
        for item in data.items:
            key = (item.product_id, item.lot_number)
            needed[key] = needed.get(key, 0) + item.quantity
        for (product_id, lot_number), quantity in needed.items():
            available = available_quantity(self.db, product_id, data.from_warehouse_id, lot_number)
            if available < quantity:
                label = f"lote {lot_number}" if lot_number else f"producto {product_id}"
                raise InsufficientStockError(label, available, quantity)

        transfer = Transfer(
            organization_id=self.organization_id,
            transfer_number=next_number(self.db, Transfer, self.organization_id, "TR"),
            from_warehouse_id=data.from_warehouse_id,
            to_warehouse_id=data.to_warehouse_id,
            status=TransferStatus.PENDING,
            created_by_id=user_id,
            notes=data.notes,
        )
        for item in data.items:
            transfer.items.append(
                TransferItem(product_id=item.product_id, lot_number=item.lot_number, quantity=item.quantity)
            )
        self.db.add(transfer)
        self.db.flush()
        logger.info(f"Transfer {transfer.transfer_number} created with {len(transfer.items)} items")
        return transfer

    def apply_action(self, transfer: Transfer, action: str, user_id: Optional[int] = None) -> Transfer:
        if action == "SEND":
            self.send(transfer)
        elif action == "RECEIVE":
            self.receive(transfer, user_id)
        elif action == "CANCEL":
            self.cancel(transfer)
        else:
            raise InvalidTransitionError(f"Acción no válida: {action}")
        return transfer

    def send(self, transfer: Transfer) -> None:
        """Take stock from the source.

        Items without a lot are split into one item per lot consumed (FEFO),
        each carrying that lot's cost and expiry.
        """
        if transfer.status != TransferStatus.PENDING:
            raise InvalidTransitionError("Solo se pueden enviar traslados pendientes")

        for item in list(transfer.items):
            if item.lot_number:
                lot = find_lot(self.db, item.product_id, transfer.from_warehouse_id, item.lot_number)
                if lot is None:
                    raise InsufficientStockError(f"lote {item.lot_number}", 0, item.quantity)
                take_stock(self.db, lot, item.quantity)
                item.unit_cost = lot.unit_cost
                item.expiry_date = lot.expiry_date
                continue

            taken = take_stock_fefo(self.db, item.product_id, transfer.from_warehouse_id, item.quantity)
            first_lot, first_qty = taken[0]
            item.lot_number = first_lot.lot_number
            item.quantity = first_qty
            item.unit_cost = first_lot.unit_cost
            item.expiry_date = first_lot.expiry_date
            for lot, qty in taken[1:]:
                transfer.items.append(
                    TransferItem(
                        product_id=item.product_id,
                        lot_number=lot.lot_number,
                        quantity=qty,
                        unit_cost=lot.unit_cost,
                        expiry_date=lot.expiry_date,
                    )
                )

        transfer.status = TransferStatus.IN_TRANSIT
        transfer.sent_at = utcnow()
        self.db.flush()
        logger.info(f"Transfer {transfer.transfer_number} sent")

    def receive(self, transfer: Transfer, user_id: Optional[int] = None) -> None:
        if transfer.status != TransferStatus.IN_TRANSIT:
            raise InvalidTransitionError("Solo se pueden recibir traslados en tránsito")

        for item in transfer.items:
            add_stock(
                self.db,
                product_id=item.product_id,
                warehouse_id=transfer.to_warehouse_id,
                lot_number=item.lot_number,
                quantity=item.quantity,
                expiry_date=item.expiry_date,
                unit_cost=item.unit_cost,
            )
        transfer.status = TransferStatus.RECEIVED
        transfer.received_at = utcnow()
        transfer.received_by_id = user_id
        self.db.flush()
        logger.info(f"Transfer {transfer.transfer_number} received")

    def cancel(self, transfer: Transfer) -> None:
        if transfer.status == TransferStatus.RECEIVED:
            raise InvalidTransitionError("No se puede cancelar un traslado ya recibido")
        if transfer.status == TransferStatus.CANCELLED:
            raise InvalidTransitionError("El traslado ya está cancelado")

        if transfer.status == TransferStatus.IN_TRANSIT:
            for item in transfer.items:
                add_stock(
                    self.db,
                    product_id=item.product_id,
                    warehouse_id=transfer.from_warehouse_id,
                    lot_number=item.lot_number,
                    quantity=item.quantity,
                    expiry_date=item.expiry_date,
                )
        transfer.status = TransferStatus.CANCELLED
        self.db.flush()
        logger.info(f"Transfer {transfer.transfer_number} cancelled")

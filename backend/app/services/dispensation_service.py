"""Dispensation: deliver medication lots to a patient.

A delivery writes a Prescription (DELIVERED) and a Delivery (COMPLETED) and
decrements the chosen lots. All lots are validated before anything is
written, so a short lot leaves the database untouched.
"""

import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from app.core.exceptions import InsufficientStockError, NotFoundError
from app.models.delivery import Delivery, DeliveryItem, DeliveryStatus
from app.models.inventory import Inventory
from app.models.patient import Patient
from app.models.prescription import Prescription, PrescriptionItem, PrescriptionStatus
from app.models.warehouse import Warehouse
from app.schemas.dispensation import DeliveryCreate
from app.services.inventory_service import take_stock
from app.services.numbering import next_number

logger = logging.getLogger(__name__)


class DispensationService:
    def __init__(self, db: Session, organization_id: int):
        self.db = db
        self.organization_id = organization_id

    def _get_patient(self, patient_id: int) -> Patient:
        patient = (
            self.db.query(Patient)
            .filter(Patient.id == patient_id, Patient.organization_id == self.organization_id)
            .first()
        )
        if not patient:
            raise NotFoundError("Paciente no encontrado")
        return patient

    def _get_warehouse(self, warehouse_id: int) -> Warehouse:
        warehouse = (
            self.db.query(Warehouse)
            .filter(Warehouse.id == warehouse_id, Warehouse.organization_id == self.organization_id)
            .first()
        )
        if not warehouse:
            raise NotFoundError("Bodega no encontrada")
        return warehouse

    def _resolve_lots(self, data: DeliveryCreate) -> "OrderedDict[int, tuple]":
        """Aggregate requested quantities per lot and check each one.

        Repeated lines for the same lot are summed before the stock check.
        """
        requested: "OrderedDict[int, int]" = OrderedDict()
        for item in data.items:
            requested[item.inventory_id] = requested.get(item.inventory_id, 0) + item.quantity

        resolved: "OrderedDict[int, tuple]" = OrderedDict()
        for inventory_id, quantity in requested.items():
            lot = self.db.query(Inventory).filter(Inventory.id == inventory_id).first()
            if not lot or lot.warehouse_id != data.warehouse_id:
                raise ValueError(f"El lote {inventory_id} no pertenece a la bodega seleccionada")
            if lot.quantity < quantity:
                raise InsufficientStockError(f"lote {lot.lot_number}", lot.quantity, quantity)
            resolved[inventory_id] = (lot, quantity)
        return resolved

    def create_delivery(self, data: DeliveryCreate, user_id: Optional[int] = None) -> Delivery:
        patient = self._get_patient(data.patient_id)
        self._get_warehouse(data.warehouse_id)
        lots = self._resolve_lots(data)

        eps_id = data.eps_id
        if eps_id is None:
            active = next((c for c in patient.contracts if c.is_active), None)
            eps_id = active.eps_id if active else None

        prescription = Prescription(
            organization_id=self.organization_id,
            prescription_number=next_number(self.db, Prescription, self.organization_id, "RX"),
            patient_id=patient.id,
            eps_id=eps_id,
            prescribing_doctor=data.prescribing_doctor,
            mipres_code=data.mipres_code,
            diagnosis_code=data.diagnosis_code,
            status=PrescriptionStatus.DELIVERED,
        )
        self.db.add(prescription)

        per_product: "OrderedDict[int, int]" = OrderedDict()
        for lot, quantity in lots.values():
            per_product[lot.product_id] = per_product.get(lot.product_id, 0) + quantity
        for product_id, quantity in per_product.items():
            prescription.items.append(
                PrescriptionItem(product_id=product_id, quantity=quantity, delivered_qty=quantity)
            )
        self.db.flush()

        delivery = Delivery(
            organization_id=self.organization_id,
            prescription_id=prescription.id,
            warehouse_id=data.warehouse_id,
            delivered_by_id=user_id,
            status=DeliveryStatus.COMPLETED,
            moderator_fee=Decimal(str(data.moderator_fee)),
            notes=data.notes,
        )
        for lot, quantity in lots.values():
            delivery.items.append(
                DeliveryItem(
                    product_id=lot.product_id,
                    inventory_id=lot.id,
                    lot_number=lot.lot_number,
                    quantity=quantity,
                    unit_cost=lot.unit_cost or Decimal("0"),
                )
            )
            take_stock(self.db, lot, quantity)

        self.db.add(delivery)
        self.db.flush()
        logger.info(
            f"Delivery {delivery.id} for patient {patient.id}: "
            f"{sum(q for _, q in lots.values())} units from warehouse {data.warehouse_id}"
        )
        return delivery

"""Dispensation (delivery) routes."""

from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Request, status
from sqlalchemy.orm import selectinload

from app.core.exceptions import service_errors
from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser
from app.core.responses import list_response
from app.db.session import DbSession
from app.models.delivery import Delivery, DeliveryItem
from app.models.prescription import Prescription
from app.schemas.dispensation import DeliveryCreate
from app.services.audit_service import CREATE, client_ip, log_action
from app.services.dispensation_service import DispensationService

router = APIRouter()


def delivery_dict(delivery: Delivery) -> dict:
    prescription = delivery.prescription
    patient = prescription.patient if prescription else None
    return {
        "id": delivery.id,
        "delivery_date": delivery.delivery_date.isoformat(),
        "status": delivery.status.value,
        "warehouse_id": delivery.warehouse_id,
        "warehouse_name": delivery.warehouse.name,
        "prescription_id": delivery.prescription_id,
        "prescription_number": prescription.prescription_number if prescription else None,
        "patient_id": patient.id if patient else None,
        "patient_name": patient.name if patient else None,
        "moderator_fee": float(delivery.moderator_fee or 0),
        "notes": delivery.notes,
        "items": [
            {
                "id": item.id,
                "product_id": item.product_id,
                "product_name": item.product.name,
                "inventory_id": item.inventory_id,
                "lot_number": item.lot_number,
                "quantity": item.quantity,
                "unit_cost": float(item.unit_cost or 0),
            }
            for item in delivery.items
        ],
    }


@router.get("/")
@limiter.limit("60/minute")
def list_deliveries(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    warehouse_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = 50,
):
    query = (
        db.query(Delivery)
        .options(
            selectinload(Delivery.items).selectinload(DeliveryItem.product),
            selectinload(Delivery.prescription).selectinload(Prescription.patient),
            selectinload(Delivery.warehouse),
        )
        .filter(Delivery.organization_id == current_user.organization_id)
    )
    if warehouse_id is not None:
        query = query.filter(Delivery.warehouse_id == warehouse_id)
    if patient_id is not None:
        query = query.join(Prescription, Delivery.prescription_id == Prescription.id).filter(
            Prescription.patient_id == patient_id
        )
    if date_from:
        query = query.filter(Delivery.delivery_date >= datetime.combine(date_from, time.min))
    if date_to:
        query = query.filter(Delivery.delivery_date < datetime.combine(date_to + timedelta(days=1), time.min))
    deliveries = query.order_by(Delivery.delivery_date.desc(), Delivery.id.desc()).limit(min(limit, 500)).all()
    return list_response([delivery_dict(d) for d in deliveries])


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
def create_delivery(request: Request, body: DeliveryCreate, db: DbSession, current_user: CurrentUser):
    """Dispense lots to a patient. Any short lot rejects the whole delivery."""
    with service_errors(db):
        delivery = DispensationService(db, current_user.organization_id).create_delivery(
            body, user_id=current_user.user_id
        )
    log_action(
        db, current_user.organization_id, CREATE, "delivery", delivery.id,
        user_id=current_user.user_id,
        new_values={"patient_id": body.patient_id, "items": len(body.items)},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(delivery)
    return delivery_dict(delivery)

"""Pending item (owed medication) routes."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy.orm import selectinload

from app.core.exceptions import service_errors
from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser
from app.core.responses import list_response
from app.db.session import DbSession
from app.models.pending_item import PendingItem, PendingStatus
from app.schemas.dispensation import PendingItemAction, PendingItemCreate
from app.services.audit_service import CREATE, UPDATE, client_ip, log_action
from app.services.pending_service import apply_action, create_pending_item, status_counts

router = APIRouter()


def pending_dict(item: PendingItem) -> dict:
    return {
        "id": item.id,
        "patient_id": item.patient_id,
        "patient_name": item.patient.name,
        "product_id": item.product_id,
        "product_name": item.product.name,
        "warehouse_id": item.warehouse_id,
        "prescription_id": item.prescription_id,
        "pending_qty": item.pending_qty,
        "delivered_qty": item.delivered_qty,
        "remaining_qty": item.remaining_qty,
        "reason": item.reason,
        "status": item.status.value,
        "notes": item.notes,
        "notified_at": item.notified_at.isoformat() if item.notified_at else None,
        "delivered_at": item.delivered_at.isoformat() if item.delivered_at else None,
        "created_at": item.created_at.isoformat() if item.created_at else None,
    }


@router.get("/")
@limiter.limit("60/minute")
def list_pending_items(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    status: str = "PENDING",
    patient_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
):
    """Pending items by status (``ALL`` lists every status) plus per-status counts."""
    query = (
        db.query(PendingItem)
        .options(selectinload(PendingItem.patient), selectinload(PendingItem.product))
        .filter(PendingItem.organization_id == current_user.organization_id)
    )
    if status.upper() != "ALL":
        try:
            query = query.filter(PendingItem.status == PendingStatus(status.upper()))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Estado no válido: {status}")
    if patient_id is not None:
        query = query.filter(PendingItem.patient_id == patient_id)
    if warehouse_id is not None:
        query = query.filter(PendingItem.warehouse_id == warehouse_id)
    items = query.order_by(PendingItem.created_at.desc(), PendingItem.id.desc()).limit(500).all()
    return list_response(
        [pending_dict(i) for i in items],
        stats=status_counts(db, current_user.organization_id),
    )


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
def create_pending_item_route(request: Request, body: PendingItemCreate, db: DbSession, current_user: CurrentUser):
    with service_errors(db):
        item = create_pending_item(db, current_user.organization_id, body)
    log_action(
        db, current_user.organization_id, CREATE, "pending_item", item.id,
        user_id=current_user.user_id,
        new_values={"product_id": body.product_id, "pending_qty": body.pending_qty},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(item)
    return pending_dict(item)


@router.patch("/{item_id}")
@limiter.limit("60/minute")
def update_pending_item(
    request: Request, item_id: int, body: PendingItemAction, db: DbSession, current_user: CurrentUser
):
    """Apply DELIVER, CANCEL or NOTIFY."""
    item = (
        db.query(PendingItem)
        .filter(PendingItem.id == item_id, PendingItem.organization_id == current_user.organization_id)
        .first()
    )
    if not item:
        raise HTTPException(status_code=404, detail="Item pendiente no encontrado")
    old_status = item.status.value
    with service_errors(db):
        apply_action(db, item, body)
    log_action(
        db, current_user.organization_id, UPDATE, "pending_item", item.id,
        user_id=current_user.user_id,
        old_values={"status": old_status}, new_values={"status": item.status.value},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(item)
    return pending_dict(item)

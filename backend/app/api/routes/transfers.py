"""Warehouse transfer routes."""

from typing import Optional

from fastapi import APIRouter, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import selectinload

from app.core.exceptions import service_errors
from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser, RequireOperator
from app.core.responses import list_response
from app.db.session import DbSession
from app.models.transfer import Transfer, TransferItem, TransferStatus
from app.schemas.dispensation import TransferAction, TransferCreate
from app.services.audit_service import CREATE, UPDATE, client_ip, log_action
from app.services.transfer_service import TransferService

router = APIRouter()


def transfer_dict(transfer: Transfer) -> dict:
    return {
        "id": transfer.id,
        "transfer_number": transfer.transfer_number,
        "status": transfer.status.value,
        "from_warehouse_id": transfer.from_warehouse_id,
        "from_warehouse_name": transfer.from_warehouse.name,
        "to_warehouse_id": transfer.to_warehouse_id,
        "to_warehouse_name": transfer.to_warehouse.name,
        "sent_at": transfer.sent_at.isoformat() if transfer.sent_at else None,
        "received_at": transfer.received_at.isoformat() if transfer.received_at else None,
        "notes": transfer.notes,
        "items": [
            {
                "id": item.id,
                "product_id": item.product_id,
                "product_name": item.product.name,
                "lot_number": item.lot_number,
                "quantity": item.quantity,
                "unit_cost": float(item.unit_cost or 0),
                "expiry_date": item.expiry_date.isoformat() if item.expiry_date else None,
            }
            for item in transfer.items
        ],
    }


@router.get("/")
@limiter.limit("60/minute")
def list_transfers(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    status: Optional[TransferStatus] = None,
    warehouse_id: Optional[int] = None,
):
    query = (
        db.query(Transfer)
        .options(
            selectinload(Transfer.items).selectinload(TransferItem.product),
            selectinload(Transfer.from_warehouse),
            selectinload(Transfer.to_warehouse),
        )
        .filter(Transfer.organization_id == current_user.organization_id)
    )
    if status is not None:
        query = query.filter(Transfer.status == status)
    if warehouse_id is not None:
        query = query.filter(
            or_(Transfer.from_warehouse_id == warehouse_id, Transfer.to_warehouse_id == warehouse_id)
        )
    transfers = query.order_by(Transfer.created_at.desc(), Transfer.id.desc()).limit(200).all()
    return list_response([transfer_dict(t) for t in transfers])


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_transfer(request: Request, body: TransferCreate, db: DbSession, current_user: RequireOperator):
    with service_errors(db):
        transfer = TransferService(db, current_user.organization_id).create(body, current_user.user_id)
    log_action(
        db, current_user.organization_id, CREATE, "transfer", transfer.id,
        user_id=current_user.user_id,
        new_values={"from": body.from_warehouse_id, "to": body.to_warehouse_id, "items": len(body.items)},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(transfer)
    return transfer_dict(transfer)


@router.patch("/{transfer_id}")
@limiter.limit("30/minute")
def update_transfer(
    request: Request, transfer_id: int, body: TransferAction, db: DbSession, current_user: RequireOperator
):
    """Apply SEND, RECEIVE or CANCEL."""
    service = TransferService(db, current_user.organization_id)
    with service_errors(db):
        transfer = service.get(transfer_id)
        old_status = transfer.status.value
        service.apply_action(transfer, body.action, current_user.user_id)
        if body.notes:
            transfer.notes = f"{transfer.notes}\n{body.notes}" if transfer.notes else body.notes
    log_action(
        db, current_user.organization_id, UPDATE, "transfer", transfer.id,
        user_id=current_user.user_id,
        old_values={"status": old_status}, new_values={"status": transfer.status.value},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(transfer)
    return transfer_dict(transfer)

"""Patient return routes."""

from typing import Optional

from fastapi import APIRouter, Request, status
from sqlalchemy.orm import selectinload

from app.core.exceptions import service_errors
from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser
from app.core.responses import list_response
from app.db.session import DbSession
from app.models.returns import InventoryReturn, ReturnItem
from app.schemas.dispensation import ReturnCreate
from app.services.audit_service import CREATE, client_ip, log_action
from app.services.receipt_service import create_return

router = APIRouter()


def return_dict(ret: InventoryReturn) -> dict:
    return {
        "id": ret.id,
        "return_number": ret.return_number,
        "return_date": ret.return_date.isoformat(),
        "warehouse_id": ret.warehouse_id,
        "warehouse_name": ret.warehouse.name,
        "patient_id": ret.patient_id,
        "reason": ret.reason,
        "status": ret.status,
        "notes": ret.notes,
        "items": [
            {
                "id": i.id,
                "product_id": i.product_id,
                "product_name": i.product.name,
                "lot_number": i.lot_number,
                "expiry_date": i.expiry_date.isoformat() if i.expiry_date else None,
                "quantity": i.quantity,
                "unit_cost": float(i.unit_cost or 0),
            }
            for i in ret.items
        ],
    }


@router.get("/")
@limiter.limit("60/minute")
def list_returns(request: Request, db: DbSession, current_user: CurrentUser, warehouse_id: Optional[int] = None):
    query = (
        db.query(InventoryReturn)
        .options(
            selectinload(InventoryReturn.items).selectinload(ReturnItem.product),
            selectinload(InventoryReturn.warehouse),
        )
        .filter(InventoryReturn.organization_id == current_user.organization_id)
    )
    if warehouse_id is not None:
        query = query.filter(InventoryReturn.warehouse_id == warehouse_id)
    returns = query.order_by(InventoryReturn.return_date.desc(), InventoryReturn.id.desc()).limit(200).all()
    return list_response([return_dict(r) for r in returns])


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_return_route(request: Request, body: ReturnCreate, db: DbSession, current_user: CurrentUser):
    with service_errors(db):
        ret = create_return(db, current_user.organization_id, body, current_user.user_id)
    log_action(
        db, current_user.organization_id, CREATE, "return", ret.id,
        user_id=current_user.user_id,
        new_values={"return_number": ret.return_number, "items": len(body.items)},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(ret)
    return return_dict(ret)

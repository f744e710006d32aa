"""Warehouse routes."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, status

from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser, RequireAdmin
from app.core.responses import list_response
from app.db.session import DbSession
from app.models.warehouse import Warehouse, WarehouseType
from app.schemas.warehouse import WarehouseCreate, WarehouseResponse, WarehouseUpdate
from app.services.audit_service import CREATE, UPDATE, client_ip, log_action

router = APIRouter()


def _get_warehouse(db, organization_id: int, warehouse_id: int) -> Warehouse:
    warehouse = (
        db.query(Warehouse)
        .filter(Warehouse.id == warehouse_id, Warehouse.organization_id == organization_id)
        .first()
    )
    if not warehouse:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bodega no encontrada")
    return warehouse


@router.get("/")
@limiter.limit("60/minute")
def list_warehouses(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    type: Optional[WarehouseType] = None,
    eps_code: Optional[str] = Query(None, description="Warehouse code prefix"),
):
    """Active warehouses of the organization."""
    query = db.query(Warehouse).filter(
        Warehouse.organization_id == current_user.organization_id,
        Warehouse.is_active.is_(True),
    )
    if type is not None:
        query = query.filter(Warehouse.type == type)
    if eps_code:
        query = query.filter(Warehouse.code.startswith(eps_code))
    warehouses = query.order_by(Warehouse.name).all()
    return list_response([WarehouseResponse.model_validate(w).model_dump() for w in warehouses])


@router.post("/", response_model=WarehouseResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_warehouse(request: Request, body: WarehouseCreate, db: DbSession, current_user: RequireAdmin):
    duplicate = (
        db.query(Warehouse.id)
        .filter(Warehouse.organization_id == current_user.organization_id, Warehouse.code == body.code)
        .first()
    )
    if duplicate:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Ya existe una bodega con ese código")

    warehouse = Warehouse(organization_id=current_user.organization_id, **body.model_dump())
    db.add(warehouse)
    db.flush()
    log_action(
        db, current_user.organization_id, CREATE, "warehouse", warehouse.id,
        user_id=current_user.user_id, new_values=body.model_dump(mode="json"),
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(warehouse)
    return warehouse


@router.put("/{warehouse_id}", response_model=WarehouseResponse)
@limiter.limit("30/minute")
def update_warehouse(
    request: Request, warehouse_id: int, body: WarehouseUpdate, db: DbSession, current_user: RequireAdmin
):
    warehouse = _get_warehouse(db, current_user.organization_id, warehouse_id)
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(warehouse, field, value)
    log_action(
        db, current_user.organization_id, UPDATE, "warehouse", warehouse.id,
        user_id=current_user.user_id, new_values=body.model_dump(mode="json", exclude_unset=True),
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(warehouse)
    return warehouse

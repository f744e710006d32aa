"""Supplier routes."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import selectinload

from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser, RequireAdmin, RequireOperator
from app.core.responses import list_response
from app.db.session import DbSession
from app.models.supplier import Supplier
from app.schemas.supplier import SupplierCreate, SupplierResponse, SupplierScoreResponse, SupplierUpdate
from app.services.audit_service import CREATE, DELETE, UPDATE, client_ip, log_action
from app.services.supplier_scoring_service import new_score

logger = logging.getLogger(__name__)

router = APIRouter()


def supplier_dict(supplier: Supplier, include_score: bool = False) -> dict:
    data = SupplierResponse.model_validate(supplier).model_dump()
    if include_score:
        data["score"] = (
            SupplierScoreResponse.model_validate(supplier.score).model_dump() if supplier.score else None
        )
    return data


def _get_supplier(db, organization_id: int, supplier_id: int) -> Supplier:
    supplier = (
        db.query(Supplier)
        .filter(Supplier.id == supplier_id, Supplier.organization_id == organization_id)
        .first()
    )
    if not supplier:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Proveedor no encontrado")
    return supplier


@router.get("/")
@limiter.limit("60/minute")
def list_suppliers(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    search: Optional[str] = None,
    include_scores: bool = False,
    include_inactive: bool = False,
):
    query = db.query(Supplier).filter(Supplier.organization_id == current_user.organization_id)
    if include_scores:
        query = query.options(selectinload(Supplier.score))
    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(Supplier.name.ilike(pattern), Supplier.code.ilike(pattern), Supplier.nit.ilike(pattern))
        )
    suppliers = query.order_by(Supplier.name).limit(500).all()
    return list_response([supplier_dict(s, include_scores) for s in suppliers])


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_supplier(request: Request, body: SupplierCreate, db: DbSession, current_user: RequireOperator):
    """Create a supplier with a neutral score on every axis."""
    duplicate = (
        db.query(Supplier.id)
        .filter(Supplier.organization_id == current_user.organization_id, Supplier.code == body.code)
        .first()
    )
    if duplicate:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ya existe un proveedor con ese código")

    supplier = Supplier(organization_id=current_user.organization_id, **body.model_dump())
    db.add(supplier)
    db.flush()
    db.add(new_score(supplier.id))
    log_action(
        db, current_user.organization_id, CREATE, "supplier", supplier.id,
        user_id=current_user.user_id, new_values=body.model_dump(mode="json"),
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(supplier)
    logger.info(f"Supplier {supplier.code} created in organization {current_user.organization_id}")
    return supplier_dict(supplier, include_score=True)


@router.put("/{supplier_id}")
@limiter.limit("30/minute")
def update_supplier(
    request: Request, supplier_id: int, body: SupplierUpdate, db: DbSession, current_user: RequireOperator
):
    supplier = _get_supplier(db, current_user.organization_id, supplier_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(supplier, field, value)
    log_action(
        db, current_user.organization_id, UPDATE, "supplier", supplier.id,
        user_id=current_user.user_id, new_values=body.model_dump(mode="json", exclude_unset=True),
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(supplier)
    return supplier_dict(supplier)


@router.delete("/{supplier_id}")
@limiter.limit("30/minute")
def deactivate_supplier(request: Request, supplier_id: int, db: DbSession, current_user: RequireAdmin):
    supplier = _get_supplier(db, current_user.organization_id, supplier_id)
    supplier.is_active = False
    log_action(
        db, current_user.organization_id, DELETE, "supplier", supplier.id,
        user_id=current_user.user_id, old_values={"is_active": True},
        ip_address=client_ip(request),
    )
    db.commit()
    return {"success": True, "id": supplier.id}

"""Product catalog routes."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import or_

from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser, RequireAdmin, RequireOperator
from app.core.responses import list_response
from app.db.session import DbSession
from app.models.product import Product
from app.schemas.product import ProductCreate, ProductResponse, ProductUpdate
from app.services.audit_service import CREATE, DELETE, UPDATE, client_ip, log_action

router = APIRouter()


def _get_product(db, organization_id: int, product_id: int) -> Product:
    product = (
        db.query(Product)
        .filter(Product.id == product_id, Product.organization_id == organization_id)
        .first()
    )
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Producto no encontrado")
    return product


@router.get("/")
@limiter.limit("60/minute")
def list_products(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    search: Optional[str] = None,
    include_inactive: bool = False,
    limit: int = 200,
):
    query = db.query(Product).filter(Product.organization_id == current_user.organization_id)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(Product.code.ilike(pattern), Product.name.ilike(pattern), Product.molecule.ilike(pattern))
        )
    total = query.count()
    products = query.order_by(Product.name).limit(min(limit, 500)).all()
    return list_response([ProductResponse.model_validate(p).model_dump() for p in products], total)


@router.get("/molecules")
@limiter.limit("60/minute")
def list_molecules(request: Request, db: DbSession, current_user: CurrentUser):
    """Distinct molecules of active products, for the rotation report filter."""
    rows = (
        db.query(Product.molecule)
        .filter(
            Product.organization_id == current_user.organization_id,
            Product.is_active.is_(True),
            Product.molecule.isnot(None),
            Product.molecule != "",
        )
        .distinct()
        .order_by(Product.molecule)
        .all()
    )
    return [molecule for (molecule,) in rows]


@router.get("/{product_id}", response_model=ProductResponse)
@limiter.limit("60/minute")
def get_product(request: Request, product_id: int, db: DbSession, current_user: CurrentUser):
    return _get_product(db, current_user.organization_id, product_id)


@router.post("/", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_product(request: Request, body: ProductCreate, db: DbSession, current_user: RequireOperator):
    duplicate = (
        db.query(Product.id)
        .filter(Product.organization_id == current_user.organization_id, Product.code == body.code)
        .first()
    )
    if duplicate:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ya existe un producto con ese código")

    product = Product(organization_id=current_user.organization_id, **body.model_dump())
    db.add(product)
    db.flush()
    log_action(
        db, current_user.organization_id, CREATE, "product", product.id,
        user_id=current_user.user_id, new_values=body.model_dump(mode="json"),
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(product)
    return product


@router.put("/{product_id}", response_model=ProductResponse)
@limiter.limit("30/minute")
def update_product(
    request: Request, product_id: int, body: ProductUpdate, db: DbSession, current_user: RequireOperator
):
    product = _get_product(db, current_user.organization_id, product_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(product, field, value)
    log_action(
        db, current_user.organization_id, UPDATE, "product", product.id,
        user_id=current_user.user_id, new_values=body.model_dump(mode="json", exclude_unset=True),
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(product)
    return product


@router.delete("/{product_id}")
@limiter.limit("30/minute")
def deactivate_product(request: Request, product_id: int, db: DbSession, current_user: RequireAdmin):
    """Soft delete: the product stays referenced by past movements."""
    product = _get_product(db, current_user.organization_id, product_id)
    product.is_active = False
    log_action(
        db, current_user.organization_id, DELETE, "product", product.id,
        user_id=current_user.user_id, old_values={"is_active": True},
        ip_address=client_ip(request),
    )
    db.commit()
    return {"success": True, "id": product.id}

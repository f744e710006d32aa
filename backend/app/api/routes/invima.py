"""INVIMA CUM catalog routes. The catalog is shared, so no organization is required."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, status

from app.core.rate_limit import limiter
from app.core.rbac import AuthenticatedUser
from app.core.responses import page_response
from app.db.session import DbSession
from app.models.invima import InvimaDrug
from app.schemas.invima import InvimaDrugResponse, InvimaDrugSummary
from app.services.invima_service import MAX_PAGE_SIZE, catalog_stats, search_drugs

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def search_catalog(
    request: Request,
    db: DbSession,
    current_user: AuthenticatedUser,
    q: Optional[str] = None,
    estado: Optional[str] = None,
    via: Optional[str] = None,
    atc: Optional[str] = None,
    forma: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
):
    """Search by product name, active ingredient, ATC or CUM (two characters minimum)."""
    drugs, total = search_drugs(db, q, estado, via, atc, forma, page, limit)
    return page_response(
        [InvimaDrugSummary.model_validate(d).model_dump(mode="json") for d in drugs], total, page, limit
    )


@router.get("/stats")
@limiter.limit("30/minute")
def get_catalog_stats(request: Request, db: DbSession, current_user: AuthenticatedUser):
    return catalog_stats(db)


@router.get("/{cum}", response_model=InvimaDrugResponse)
@limiter.limit("60/minute")
def get_drug(request: Request, cum: str, db: DbSession, current_user: AuthenticatedUser):
    drug = db.query(InvimaDrug).filter(InvimaDrug.cum == cum).first()
    if not drug:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Medicamento no encontrado")
    return drug

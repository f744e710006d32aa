"""Kardex (stock card) route."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Request

from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser
from app.db.session import DbSession
from app.services.kardex_service import KardexService

router = APIRouter()


@router.get("/")
@limiter.limit("30/minute")
def get_kardex(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    product_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
):
    """Stock movements newest first, each with the running balance after it."""
    return KardexService(db, current_user.organization_id).movements(
        product_id, warehouse_id, date_from, date_to
    )

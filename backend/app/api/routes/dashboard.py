"""Dashboard route."""

from typing import Optional

from fastapi import APIRouter, Request

from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser
from app.db.session import DbSession
from app.services.dashboard_service import DashboardService

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def get_dashboard(request: Request, db: DbSession, current_user: CurrentUser, warehouse_id: Optional[int] = None):
    """Stats, recent deliveries and alerts for the home screen."""
    return DashboardService(db, current_user.organization_id).summary(warehouse_id)

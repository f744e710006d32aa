"""Report catalog, rotation reports and restock alerts."""

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Request

from app.core.exceptions import service_errors
from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser
from app.core.responses import list_response
from app.db.session import DbSession
from app.services.report_service import REPORT_TYPES, ReportService, eps_detail, eps_summary
from app.services.rotation_service import generate_rotation_alerts, molecule_rotation_report

router = APIRouter()


@router.get("/")
@limiter.limit("20/minute")
def generate_report(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    type: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    warehouse_id: Optional[int] = None,
):
    """Tabular report by type. The period defaults to the last 30 days."""
    with service_errors(db):
        service = ReportService(db, current_user.organization_id, start_date, end_date, warehouse_id)
        return service.generate(type)


@router.get("/types")
@limiter.limit("60/minute")
def list_report_types(request: Request, current_user: CurrentUser):
    return list_response([
        {"type": key, "title": title, "headers": headers}
        for key, (title, headers, _) in REPORT_TYPES.items()
    ])


@router.get("/eps")
@limiter.limit("20/minute")
def eps_report(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    start_date: date,
    end_date: date,
    eps_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
):
    """Summary for every active EPS, or the detail of one when ``eps_id`` is given."""
    with service_errors(db):
        if eps_id is not None:
            return eps_detail(db, current_user.organization_id, eps_id, start_date, end_date, warehouse_id)
        return eps_summary(db, current_user.organization_id, start_date, end_date, warehouse_id)


@router.get("/rotation")
@limiter.limit("30/minute")
def rotation_report(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    period: Literal["day", "week", "month"] = "day",
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    molecule: Optional[str] = None,
    warehouse_id: Optional[int] = None,
):
    """Average consumption per molecule. Defaults to the last 30 days."""
    return molecule_rotation_report(
        db, current_user.organization_id, period, start_date, end_date, molecule, warehouse_id
    )


@router.get("/alerts")
@limiter.limit("30/minute")
def rotation_alerts(request: Request, db: DbSession, current_user: CurrentUser, warehouse_id: Optional[int] = None):
    alerts = generate_rotation_alerts(db, current_user.organization_id, warehouse_id)
    return list_response([a.to_dict() for a in alerts])

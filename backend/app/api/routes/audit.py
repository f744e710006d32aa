"""Audit log routes."""

from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Query, Request

from app.core.rate_limit import limiter
from app.core.rbac import RequireAdmin
from app.core.responses import page_response
from app.db.session import DbSession
from app.models.audit import AuditLog

router = APIRouter()


@router.get("/")
@limiter.limit("30/minute")
def list_audit_logs(
    request: Request,
    db: DbSession,
    current_user: RequireAdmin,
    entity: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
):
    """Audit entries of the organization, newest first."""
    query = db.query(AuditLog).filter(AuditLog.organization_id == current_user.organization_id)
    if entity:
        query = query.filter(AuditLog.entity == entity)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    if action:
        query = query.filter(AuditLog.action == action.upper())
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    if date_from:
        query = query.filter(AuditLog.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        query = query.filter(AuditLog.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    total = query.count()
    logs = (
        query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    items = [
        {
            "id": log.id,
            "action": log.action,
            "entity": log.entity,
            "entity_id": log.entity_id,
            "user_id": log.user_id,
            "user_name": log.user.name if log.user else None,
            "old_values": log.old_values,
            "new_values": log.new_values,
            "ip_address": log.ip_address,
            "created_at": log.created_at.isoformat(),
        }
        for log in logs
    ]
    return page_response(items, total, page, limit)

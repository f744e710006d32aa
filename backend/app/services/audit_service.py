"""Audit logging service.

Route handlers call ``log_action`` after a state change, inside the same
session, so the entry commits (or rolls back) together with the change it
describes.
"""

import logging
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from app.models.audit import AuditLog

logger = logging.getLogger("audit")

CREATE = "CREATE"
UPDATE = "UPDATE"
DELETE = "DELETE"


def log_action(
    db: Session,
    organization_id: Optional[int],
    action: str,
    entity: str,
    entity_id: Any = None,
    user_id: Optional[int] = None,
    old_values: Optional[dict[str, Any]] = None,
    new_values: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> Optional[AuditLog]:
    """Add an audit entry to the caller's session.

    Entries are tied to an organization; without one nothing is written.
    """
    if organization_id is None:
        logger.debug(f"Audit skipped for {action} {entity}: no organization")
        return None

    entry = AuditLog(
        organization_id=organization_id,
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        old_values=old_values,
        new_values=new_values,
        ip_address=ip_address,
    )
    db.add(entry)
    logger.info(f"{action} {entity} {entity_id or ''} by user {user_id}")
    return entry


def client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None

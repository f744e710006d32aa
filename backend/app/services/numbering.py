"""Sequential document numbers per organization (COT-00001, DEV-000001, ...)."""

from sqlalchemy import func
from sqlalchemy.orm import Session


def next_number(db: Session, model, organization_id: int, prefix: str, width: int = 6) -> str:
    """Count-based; two concurrent creations may draw the same number."""
    count = (
        db.query(func.count(model.id))
        .filter(model.organization_id == organization_id)
        .scalar()
    ) or 0
    return f"{prefix}-{count + 1:0{width}d}"

"""EPS (health insurer) routes."""

from fastapi import APIRouter, HTTPException, Request, status

from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser, RequireAdmin
from app.core.responses import list_response
from app.db.session import DbSession
from app.models.patient import EPS
from app.schemas.patient import EPSCreate, EPSResponse
from app.services.audit_service import CREATE, client_ip, log_action

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def list_eps(request: Request, db: DbSession, current_user: CurrentUser):
    rows = (
        db.query(EPS)
        .filter(EPS.organization_id == current_user.organization_id, EPS.is_active.is_(True))
        .order_by(EPS.name)
        .all()
    )
    return list_response([EPSResponse.model_validate(e).model_dump() for e in rows])


@router.post("/", response_model=EPSResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_eps(request: Request, body: EPSCreate, db: DbSession, current_user: RequireAdmin):
    duplicate = (
        db.query(EPS.id)
        .filter(EPS.organization_id == current_user.organization_id, EPS.code == body.code)
        .first()
    )
    if duplicate:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Ya existe una EPS con ese código")

    eps = EPS(organization_id=current_user.organization_id, **body.model_dump())
    db.add(eps)
    db.flush()
    log_action(
        db, current_user.organization_id, CREATE, "eps", eps.id,
        user_id=current_user.user_id, new_values=body.model_dump(),
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(eps)
    return eps

"""Organization and membership routes."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from app.core.rate_limit import limiter
from app.core.rbac import AuthenticatedUser, CurrentUser, OrgRole, RequireAdmin
from app.db.session import DbSession
from app.models.organization import Organization, OrganizationMember
from app.models.user import User
from app.api.routes.auth import issue_token
from app.schemas.auth import MemberCreate, OrganizationCreate
from app.services.audit_service import CREATE, client_ip, log_action

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def list_organizations(request: Request, db: DbSession, current_user: AuthenticatedUser):
    memberships = (
        db.query(OrganizationMember)
        .filter(OrganizationMember.user_id == current_user.user_id)
        .order_by(OrganizationMember.id)
        .all()
    )
    return {
        "items": [
            {
                "id": m.organization.id,
                "name": m.organization.name,
                "nit": m.organization.nit,
                "role": m.role.value,
            }
            for m in memberships
        ]
    }


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def create_organization(request: Request, body: OrganizationCreate, db: DbSession, current_user: AuthenticatedUser):
    """Create an organization owned by the caller and return a token bound to it."""
    organization = Organization(name=body.name, nit=body.nit)
    db.add(organization)
    db.flush()
    membership = OrganizationMember(organization_id=organization.id, user_id=current_user.user_id, role=OrgRole.OWNER)
    db.add(membership)
    log_action(
        db, organization.id, CREATE, "organization", organization.id,
        user_id=current_user.user_id, new_values={"name": organization.name},
        ip_address=client_ip(request),
    )
    db.commit()
    user = db.get(User, current_user.user_id)
    return {
        "id": organization.id,
        "name": organization.name,
        "nit": organization.nit,
        "role": OrgRole.OWNER.value,
        "token": issue_token(user, membership).model_dump(),
    }


@router.get("/members")
@limiter.limit("60/minute")
def list_members(request: Request, db: DbSession, current_user: CurrentUser):
    members = (
        db.query(OrganizationMember)
        .filter(OrganizationMember.organization_id == current_user.organization_id)
        .order_by(OrganizationMember.id)
        .all()
    )
    return {
        "items": [
            {"user_id": m.user_id, "email": m.user.email, "name": m.user.name, "role": m.role.value}
            for m in members
        ]
    }


@router.post("/members", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def add_member(request: Request, body: MemberCreate, db: DbSession, current_user: RequireAdmin):
    """Add an existing user to the caller's organization."""
    if body.role == OrgRole.OWNER and current_user.role != OrgRole.OWNER:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Solo un OWNER puede asignar OWNER")

    user = db.query(User).filter(User.email == body.email).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Usuario no encontrado")
    exists = (
        db.query(OrganizationMember)
        .filter(
            OrganizationMember.organization_id == current_user.organization_id,
            OrganizationMember.user_id == user.id,
        )
        .first()
    )
    if exists:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="El usuario ya es miembro")

    member = OrganizationMember(
        organization_id=current_user.organization_id, user_id=user.id, role=body.role
    )
    db.add(member)
    log_action(
        db, current_user.organization_id, CREATE, "organization_member", user.id,
        user_id=current_user.user_id, new_values={"email": user.email, "role": body.role.value},
        ip_address=client_ip(request),
    )
    db.commit()
    logger.info(f"User {user.id} added to organization {current_user.organization_id} as {body.role.value}")
    return {"user_id": user.id, "email": user.email, "role": body.role.value}

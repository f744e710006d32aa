"""Authentication routes."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request, status

from app.core.rate_limit import limiter
from app.core.rbac import AuthenticatedUser, OrgRole
from app.core.security import create_access_token, get_password_hash, verify_password
from app.db.session import DbSession
from app.models.organization import Organization, OrganizationMember
from app.models.user import User
from app.schemas.auth import LoginRequest, RegisterRequest, Token
from app.services.audit_service import CREATE, client_ip, log_action

logger = logging.getLogger("auth")

router = APIRouter()


def issue_token(user: User, membership: Optional[OrganizationMember]) -> Token:
    data = {"sub": str(user.id), "email": user.email}
    if membership is not None:
        data["role"] = membership.role.value
        data["organization_id"] = membership.organization_id
    return Token(
        access_token=create_access_token(data),
        organization_id=membership.organization_id if membership else None,
        role=membership.role.value if membership else None,
    )


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def register(request: Request, body: RegisterRequest, db: DbSession):
    """Create an account; with ``organization_name`` also create the organization as OWNER."""
    if db.query(User).filter(User.email == body.email).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="El email ya está registrado",
        )

    user = User(email=body.email, password_hash=get_password_hash(body.password), name=body.name)
    db.add(user)
    db.flush()

    membership = None
    if body.organization_name:
        organization = Organization(name=body.organization_name, nit=body.organization_nit)
        db.add(organization)
        db.flush()
        membership = OrganizationMember(
            organization_id=organization.id, user_id=user.id, role=OrgRole.OWNER
        )
        db.add(membership)
        log_action(
            db, organization.id, CREATE, "organization", organization.id,
            user_id=user.id, new_values={"name": organization.name},
            ip_address=client_ip(request),
        )

    db.commit()
    logger.info(f"Registered user {user.email} (ID: {user.id})")
    return issue_token(user, membership)


@router.post("/login", response_model=Token)
@limiter.limit("5/minute")
def login(request: Request, body: LoginRequest, db: DbSession):
    """Authenticate and return a token bound to one organization."""
    ip = client_ip(request) or "unknown"
    user = db.query(User).filter(User.email == body.email).first()

    if not user or not verify_password(body.password, user.password_hash):
        logger.warning(f"Failed login attempt for email: {body.email} from IP: {ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Email o contraseña inválidos",
        )
    if not user.is_active:
        logger.warning(f"Login attempt for inactive user: {body.email} (ID: {user.id}) from IP: {ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Cuenta de usuario deshabilitada",
        )

    memberships = sorted(user.memberships, key=lambda m: m.id)
    if body.organization_id is not None:
        membership = next((m for m in memberships if m.organization_id == body.organization_id), None)
        if membership is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No pertenece a la organización indicada",
            )
    else:
        membership = memberships[0] if memberships else None

    logger.info(f"Successful login: {user.email} (ID: {user.id}) from IP: {ip}")
    return issue_token(user, membership)


@router.get("/me")
@limiter.limit("60/minute")
def me(request: Request, current_user: AuthenticatedUser, db: DbSession):
    """Current user and the organizations they belong to."""
    user = db.get(User, current_user.user_id)
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "organization_id": current_user.organization_id,
        "role": current_user.role.value if current_user.role else None,
        "organizations": [
            {
                "id": m.organization_id,
                "name": m.organization.name,
                "role": m.role.value,
            }
            for m in sorted(user.memberships, key=lambda m: m.id)
        ],
    }

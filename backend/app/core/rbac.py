"""Role-Based Access Control (RBAC) utilities.

Roles are per organization: a user holds one role in each organization
they belong to, and the access token is bound to a single organization.
"""

from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status

from app.core.security import extract_token
from app.db.session import DbSession


class OrgRole(str, Enum):
    """Organization member roles."""

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    OPERATOR = "OPERATOR"
    DISPENSER = "DISPENSER"


# Role hierarchy: owner > admin > operator > dispenser
ROLE_HIERARCHY = {
    OrgRole.OWNER: 4,
    OrgRole.ADMIN: 3,
    OrgRole.OPERATOR: 2,
    OrgRole.DISPENSER: 1,
}


class TokenData:
    """Decoded token data.

    Attributes:
        user_id: The user's database ID.
        email: The user's email address.
        role: Role in the bound organization, None when the user has none yet.
        organization_id: Organization the token is bound to.
        name: Display name (defaults to email prefix).
    """

    def __init__(self, user_id: int, email: str, role: Optional[OrgRole],
                 organization_id: Optional[int] = None, name: str = ""):
        self.user_id = user_id
        self.id = user_id
        self.email = email
        self.role = role
        self.organization_id = organization_id
        self.name = name or email.split("@")[0]


async def get_current_user(request: Request, db: DbSession) -> TokenData:
    """Get the current authenticated user from the Bearer token or access_token cookie."""
    payload = extract_token(
        request.headers.get("Authorization", ""),
        request.cookies.get("access_token"),
    )
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No autenticado",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    email = payload.get("email")
    if user_id is None or email is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido",
        )

    role = None
    if payload.get("role"):
        try:
            role = OrgRole(payload["role"])
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Rol inválido en el token",
            )

    from app.models.user import User
    user = db.get(User, int(user_id))
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Cuenta de usuario deshabilitada",
        )

    organization_id = payload.get("organization_id")
    return TokenData(
        user_id=user.id, email=email, role=role,
        organization_id=int(organization_id) if organization_id else None,
        name=user.name,
    )


async def get_org_user(
    current_user: Annotated[TokenData, Depends(get_current_user)]
) -> TokenData:
    """Require the token to be bound to an organization."""
    if current_user.organization_id is None or current_user.role is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Usuario sin organización",
        )
    return current_user


def require_role(minimum_role: OrgRole):
    """Dependency to require a minimum role level in the bound organization."""

    async def role_checker(
        current_user: Annotated[TokenData, Depends(get_org_user)]
    ) -> TokenData:
        user_level = ROLE_HIERARCHY.get(current_user.role, 0)
        required_level = ROLE_HIERARCHY.get(minimum_role, 0)

        if user_level < required_level:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requiere rol {minimum_role.value} o superior",
            )
        return current_user

    return role_checker


# Common role dependencies
RequireOwner = Annotated[TokenData, Depends(require_role(OrgRole.OWNER))]
RequireAdmin = Annotated[TokenData, Depends(require_role(OrgRole.ADMIN))]
RequireOperator = Annotated[TokenData, Depends(require_role(OrgRole.OPERATOR))]
CurrentUser = Annotated[TokenData, Depends(get_org_user)]
AuthenticatedUser = Annotated[TokenData, Depends(get_current_user)]

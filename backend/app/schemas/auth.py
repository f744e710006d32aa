"""Authentication and organization schemas."""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from app.core.rbac import OrgRole


class LoginRequest(BaseModel):
    """Login request body."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    organization_id: Optional[int] = None


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)
    organization_name: Optional[str] = Field(None, max_length=255)
    organization_nit: Optional[str] = Field(None, max_length=20)


class Token(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"
    organization_id: Optional[int] = None
    role: Optional[str] = None


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    nit: Optional[str] = Field(None, max_length=20)


class MemberCreate(BaseModel):
    email: EmailStr
    role: OrgRole = OrgRole.DISPENSER

"""User and authentication schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .common import OrgRole


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class PasswordResetRequest(BaseModel):
    email: EmailStr


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class UserFlagsUpdateRequest(BaseModel):
    """Admin update of account flags."""
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None


class ProfileUpdateRequest(BaseModel):
    """Self-service profile update. Omitted fields are left unchanged."""
    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=32)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class UserResponse(BaseModel):
    id: uuid.UUID
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    is_verified: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserListResponse(BaseModel):
    data: List[UserResponse]


class AuthResponse(BaseModel):
    """Provider session returned by register/login."""
    user: UserResponse
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "bearer"


class SessionResponse(BaseModel):
    """Legacy direct session."""
    token: str
    expires_at: datetime
    user: UserResponse


class SessionInfoResponse(BaseModel):
    authenticated: bool
    source: str  # profile | claims | session
    user: UserResponse


class DashboardOrg(BaseModel):
    id: uuid.UUID
    name: str
    role: OrgRole


class DashboardContextResponse(BaseModel):
    """The caller's profile plus every org they belong to, with their role."""
    user: Optional[UserResponse] = None
    organizations: List[DashboardOrg]

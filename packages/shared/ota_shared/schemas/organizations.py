"""
Organization-related Pydantic schemas.

Covers: Org CRUD request/response and membership management.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from .common import OrgRole


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=200)


class MemberAddRequest(BaseModel):
    """Add an existing user to the org, by id or by email."""
    user_id: Optional[uuid.UUID] = None
    email: Optional[EmailStr] = None
    role: OrgRole = OrgRole.MEMBER

    @model_validator(mode="after")
    def _one_identifier(self) -> "MemberAddRequest":
        if (self.user_id is None) == (self.email is None):
            raise ValueError("Exactly one of user_id or email is required")
        return self


class MemberUpdateRequest(BaseModel):
    role: OrgRole


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    created_at: datetime
    updated_at: datetime


class OrgListItem(BaseModel):
    id: uuid.UUID
    name: str
    role: OrgRole


class OrgListResponse(BaseModel):
    data: list[OrgListItem]


class MemberResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    user_id: uuid.UUID
    email: Optional[str] = None
    role: OrgRole
    created_at: datetime


class MemberListResponse(BaseModel):
    data: list[MemberResponse]

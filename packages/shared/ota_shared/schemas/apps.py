"""App and app-permission schemas."""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .common import AppRole, Platform

APP_IDENTIFIER_PATTERN = r"^[a-z0-9]+(\.[a-z0-9_-]+)+$"


def derive_app_identifier(name: str) -> str:
    """Reverse-DNS identifier derived from an app name: ``My Shop`` -> ``com.my-shop``."""
    return "com." + re.sub(r"\s+", "-", name.strip().lower())


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class AppCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    organization_id: uuid.UUID
    name: str = Field(min_length=1, max_length=200)
    platform: Platform
    app_id: Optional[str] = Field(default=None, pattern=APP_IDENTIFIER_PATTERN)
    icon_url: Optional[str] = None


class AppUpdateRequest(BaseModel):
    """Partial update. The reverse-DNS identifier and owning org are fixed."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    platform: Optional[Platform] = None
    icon_url: Optional[str] = None


class AppPermissionGrantRequest(BaseModel):
    user_id: uuid.UUID
    role: AppRole


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class AppResponse(BaseModel):
    id: uuid.UUID
    app_id: str
    name: str
    platform: Platform
    icon_url: Optional[str] = None
    organization_id: uuid.UUID
    created_at: datetime
    updated_at: datetime


class AppListResponse(BaseModel):
    data: list[AppResponse]


class AppPermissionResponse(BaseModel):
    id: uuid.UUID
    app_id: uuid.UUID
    user_id: uuid.UUID
    role: AppRole
    created_at: datetime
    updated_at: datetime


class AppPermissionListResponse(BaseModel):
    data: list[AppPermissionResponse]


class AppAccessResponse(BaseModel):
    """The caller's resolved access to one app."""
    app_id: uuid.UUID
    role: AppRole
    via: str  # direct | organization
    org_role: Optional[str] = None

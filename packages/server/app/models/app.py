"""App model: an update-distribution target owned by an organization."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class App(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "apps"
    __table_args__ = (
        sa.CheckConstraint("platform IN ('ios', 'android')", name="ck_apps_platform"),
    )

    app_id: str = Field(unique=True, nullable=False, index=True)  # e.g. com.example.shop
    name: str = Field(nullable=False)
    platform: str = Field(nullable=False)  # ios | android
    icon_url: Optional[str] = None
    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", ondelete="CASCADE", nullable=False, index=True
    )
    created_by: Optional[uuid.UUID] = None

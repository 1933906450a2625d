"""Direct app grant: one role per (app, user)."""

import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class AppPermission(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "app_permissions"
    __table_args__ = (
        sa.UniqueConstraint("app_id", "user_id", name="uq_app_permissions_app_user"),
        sa.CheckConstraint(
            "role IN ('admin', 'developer', 'tester', 'viewer')", name="ck_app_permissions_role"
        ),
    )

    app_id: uuid.UUID = Field(foreign_key="apps.id", ondelete="CASCADE", nullable=False, index=True)
    user_id: uuid.UUID = Field(nullable=False, index=True)
    role: str = Field(nullable=False)  # admin | developer | tester | viewer

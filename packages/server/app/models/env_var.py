"""Per-app environment variable, scoped to an environment and optionally a channel."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class EnvVar(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "app_env_vars"
    __table_args__ = (
        sa.UniqueConstraint(
            "app_id", "key", "environment", "channel", name="uq_app_env_vars_scope"
        ),
        sa.CheckConstraint(
            "value_type IN ('string', 'number', 'boolean', 'json')",
            name="ck_app_env_vars_value_type",
        ),
        sa.CheckConstraint(
            "environment IN ('production', 'staging', 'development', 'all')",
            name="ck_app_env_vars_environment",
        ),
    )

    app_id: uuid.UUID = Field(foreign_key="apps.id", ondelete="CASCADE", nullable=False, index=True)
    key: str = Field(nullable=False)  # upper-case, [A-Z0-9_]
    value: str = Field(nullable=False)
    value_type: str = Field(default="string", nullable=False)
    environment: str = Field(nullable=False)
    # Empty string = every channel; NULL would escape the unique constraint
    channel: str = Field(default="", nullable=False)
    is_secret: bool = Field(default=False, nullable=False)
    description: Optional[str] = None

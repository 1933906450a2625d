"""Legacy role: a named bundle of permission strings."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Role(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "roles"

    name: str = Field(nullable=False)
    description: Optional[str] = None
    # NULL = system-wide role
    app_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="apps.id", ondelete="CASCADE", index=True
    )
    permissions: list[str] = Field(default_factory=list, sa_type=sa.JSON, nullable=False)

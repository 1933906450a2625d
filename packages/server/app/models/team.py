"""Legacy team, scoped to a single app."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Team(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "teams"

    name: str = Field(nullable=False)
    description: Optional[str] = None
    app_id: uuid.UUID = Field(foreign_key="apps.id", ondelete="CASCADE", nullable=False, index=True)
    created_by: Optional[uuid.UUID] = None

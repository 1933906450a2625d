"""Legacy team membership carrying a role reference."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, _utcnow


class TeamMembership(UUIDMixin, SQLModel, table=True):
    __tablename__ = "team_memberships"

    user_id: uuid.UUID = Field(nullable=False, index=True)
    team_id: uuid.UUID = Field(foreign_key="teams.id", ondelete="CASCADE", nullable=False, index=True)
    role_id: uuid.UUID = Field(foreign_key="roles.id", ondelete="CASCADE", nullable=False)
    joined_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.text("CURRENT_TIMESTAMP")},
        sa_type=sa.DateTime(timezone=True),
    )

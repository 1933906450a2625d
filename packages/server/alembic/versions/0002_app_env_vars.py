"""Per-app environment variables.

Revision ID: 0002_app_env_vars
Revises: 0001_access_control
Create Date: 2026-10-19 14:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0002_app_env_vars"
down_revision: Union[str, None] = "0001_access_control"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "app_env_vars",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "app_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("apps.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("key", sa.Text(), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("value_type", sa.Text(), nullable=False, server_default="string"),
        sa.Column("environment", sa.Text(), nullable=False),
        sa.Column("channel", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_secret", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("app_id", "key", "environment", "channel", name="uq_app_env_vars_scope"),
        sa.CheckConstraint(
            "value_type IN ('string', 'number', 'boolean', 'json')", name="ck_app_env_vars_value_type"
        ),
        sa.CheckConstraint(
            "environment IN ('production', 'staging', 'development', 'all')",
            name="ck_app_env_vars_environment",
        ),
    )
    op.create_index("ix_app_env_vars_app_id", "app_env_vars", ["app_id"])


def downgrade() -> None:
    op.drop_table("app_env_vars")

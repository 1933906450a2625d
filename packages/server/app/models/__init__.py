# SQLModel definitions - imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .organization import Organization  # noqa: F401
from .organization_member import OrganizationMember  # noqa: F401
from .app import App  # noqa: F401
from .app_permission import AppPermission  # noqa: F401
from .team import Team  # noqa: F401
from .role import Role  # noqa: F401
from .team_membership import TeamMembership  # noqa: F401
from .user_session import UserSession  # noqa: F401
from .env_var import EnvVar  # noqa: F401

from enum import Enum
from pydantic import BaseModel

class OrgRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"

class AppRole(str, Enum):
    ADMIN = "admin"
    DEVELOPER = "developer"
    TESTER = "tester"
    VIEWER = "viewer"

class Platform(str, Enum):
    IOS = "ios"
    ANDROID = "android"

# Org roles that confer implicit admin access to every app the org owns
ELEVATED_ORG_ROLES: tuple["OrgRole", ...] = (OrgRole.OWNER, OrgRole.ADMIN)

# Highest app role; the only one granted through org membership
TOP_APP_ROLE = AppRole.ADMIN

class ErrorBody(BaseModel):
    code: str
    message: str
    status: int

class ErrorResponse(BaseModel):
    error: ErrorBody

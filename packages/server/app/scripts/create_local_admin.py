"""
Script to create an initial administrator with a local password for testing.

Creates (idempotently):
- the user, with a bcrypt password for ``POST /auth/sessions``
- a "Platform" organization owned by the user, with a console app
- a system-wide "Administrator" role granting ``*``
- an "Administrators" team on the console app holding the user with that role
"""

import argparse
import asyncio

from app.core.auth import hash_password
from app.core.store import get_store
from app.models.app import App
from app.models.role import Role
from app.models.team import Team
from app.models.team_membership import TeamMembership
from app.models.user import User
from app.services import provisioning
from ota_shared.schemas.common import Platform
from ota_shared.schemas.onboarding import OnboardingAppInput, OnboardingOrgInput, OnboardingRequest
from ota_shared.schemas.rbac import GLOBAL_WILDCARD

CONSOLE_APP_NAME = "OTA Console"


async def create_admin(email: str, password: str):
    store = get_store()

    # 1. User
    user = await store.select_one(User, email=email)
    if user is None:
        user = await store.insert(
            User(email=email, password_hash=hash_password(password), is_verified=True)
        )
        print(f"Created user: {email}")
    else:
        await store.update(User, {"password_hash": hash_password(password)}, id=user.id)
        print(f"User {email} already exists; password reset.")

    # 2. Organization + console app
    app = await store.select_one(App, app_id="com.ota-console")
    if app is None:
        result = await provisioning.onboard(
            user.id,
            OnboardingRequest(
                organization=OnboardingOrgInput(name="Platform"),
                app=OnboardingAppInput(name=CONSOLE_APP_NAME, platform=Platform.IOS),
            ),
            store,
        )
        app = result.app
        print(f"Created organization '{result.organization.name}' with app {app.app_id}.")

    # 3. System-wide administrator role
    role = await store.select_one(Role, name="Administrator", app_id=None)
    if role is None:
        role = await store.insert(
            Role(
                name="Administrator",
                description="Full access",
                app_id=None,
                permissions=[GLOBAL_WILDCARD],
            )
        )
        print("Created system role 'Administrator'.")

    # 4. Team membership carrying the role
    team = await store.select_one(Team, name="Administrators", app_id=app.id)
    if team is None:
        team = await store.insert(Team(name="Administrators", app_id=app.id, created_by=user.id))
    membership = await store.select_one(
        TeamMembership, user_id=user.id, team_id=team.id, role_id=role.id
    )
    if membership is None:
        await store.insert(TeamMembership(user_id=user.id, team_id=team.id, role_id=role.id))
        print(f"Added {email} to 'Administrators' with role 'Administrator'.")

    print("Done.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local admin user.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for the user")

    args = parser.parse_args()

    asyncio.run(create_admin(args.email, args.password))

"""
Tests for the saga runner and first-run provisioning.

Covers:
- Saga ordering, reverse compensation, non-critical steps
- onboard(): happy path, rollback after each critical step, soft failure of
  the app grant, compensation failures never masking the original error
- Request validation for blank names and unknown platforms
"""

from __future__ import annotations

import uuid

import pytest
from pydantic import ValidationError

from app.core.access import APP_ADMIN, check_resource_access
from app.core.errors import ProvisioningError, StoreError
from app.models.app import App
from app.models.app_permission import AppPermission
from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.services.provisioning import onboard
from app.services.saga import Saga
from ota_shared.schemas.onboarding import OnboardingRequest


def _request(org: str = "Acme", app: str = "My Shop", platform: str = "ios") -> OnboardingRequest:
    return OnboardingRequest.model_validate(
        {"organization": {"name": org}, "app": {"name": app, "platform": platform}}
    )


# ---------------------------------------------------------------------------
# Saga
# ---------------------------------------------------------------------------

class TestSaga:
    @pytest.mark.asyncio
    async def test_results_flow_between_steps(self):
        async def first(results):
            return 1

        async def second(results):
            return results["first"] + 1

        results = await Saga("t").step("first", first).step("second", second).run()
        assert results == {"first": 1, "second": 2}

    @pytest.mark.asyncio
    async def test_compensates_in_reverse_order(self):
        undone = []

        def make(name):
            async def action(results):
                return name

            async def compensate(value):
                undone.append(value)

            return action, compensate

        async def boom(results):
            raise RuntimeError("boom")

        saga = Saga("t")
        for name in ("a", "b", "c"):
            saga.step(name, *make(name))
        saga.step("d", boom)

        with pytest.raises(ProvisioningError) as exc_info:
            await saga.run()

        assert undone == ["c", "b", "a"]
        assert exc_info.value.step == "d"
        assert isinstance(exc_info.value.cause, RuntimeError)

    @pytest.mark.asyncio
    async def test_failed_step_is_not_compensated(self):
        undone = []

        async def fail(results):
            raise RuntimeError("boom")

        async def compensate(value):
            undone.append(value)

        with pytest.raises(ProvisioningError):
            await Saga("t").step("only", fail, compensate).run()
        assert undone == []

    @pytest.mark.asyncio
    async def test_non_critical_failure_is_skipped(self):
        async def ok(results):
            return "ok"

        async def fail(results):
            raise RuntimeError("boom")

        results = await (
            Saga("t")
            .step("a", ok)
            .step("optional", fail, critical=False)
            .step("b", ok)
            .run()
        )
        assert results == {"a": "ok", "b": "ok"}

    @pytest.mark.asyncio
    async def test_compensation_failure_keeps_original_error(self):
        async def ok(results):
            return "ok"

        async def bad_undo(value):
            raise RuntimeError("undo failed")

        async def fail(results):
            raise ValueError("original")

        with pytest.raises(ProvisioningError) as exc_info:
            await Saga("t").step("a", ok, bad_undo).step("b", fail).run()

        assert isinstance(exc_info.value.cause, ValueError)
        assert "original" in str(exc_info.value)

    def test_status_follows_typed_cause(self):
        assert ProvisioningError("x", StoreError("down")).status_code == 503
        assert ProvisioningError("x", RuntimeError("?")).status_code == 500


# ---------------------------------------------------------------------------
# onboard()
# ---------------------------------------------------------------------------

class TestOnboard:
    @pytest.mark.asyncio
    async def test_success(self, store):
        user_id = uuid.uuid4()

        result = await onboard(user_id, _request(), store)

        assert result.permission_granted is True
        assert result.organization.name == "Acme"
        assert result.app.name == "My Shop"
        assert result.app.app_id == "com.my-shop"
        assert result.app.organization_id == result.organization.id

        members = await store.select(OrganizationMember, organization_id=result.organization.id)
        assert [(m.user_id, m.role) for m in members] == [(user_id, "owner")]

        grants = await store.select(AppPermission, app_id=result.app.id)
        assert [(g.user_id, g.role) for g in grants] == [(user_id, "admin")]

    @pytest.mark.asyncio
    async def test_names_are_trimmed(self, store):
        result = await onboard(uuid.uuid4(), _request("  Acme  ", "  Shop "), store)
        assert result.organization.name == "Acme"
        assert result.app.app_id == "com.shop"

    @pytest.mark.asyncio
    async def test_organization_failure_creates_nothing(self, flaky_store):
        flaky_store.fail("insert", Organization)

        with pytest.raises(ProvisioningError) as exc_info:
            await onboard(uuid.uuid4(), _request(), flaky_store)

        assert exc_info.value.step == "organization"
        assert await flaky_store.inner.select(Organization) == []

    @pytest.mark.asyncio
    async def test_membership_failure_rolls_back_org(self, flaky_store):
        flaky_store.fail("insert", OrganizationMember)

        with pytest.raises(ProvisioningError) as exc_info:
            await onboard(uuid.uuid4(), _request(), flaky_store)

        assert exc_info.value.step == "membership"
        assert await flaky_store.inner.select(Organization) == []
        assert ("delete", Organization) in flaky_store.calls

    @pytest.mark.asyncio
    async def test_duplicate_app_identifier_rolls_back(self, store, seed):
        other = await seed.org("Other")
        await seed.app(other.id, name="Shop")
        user_id = uuid.uuid4()

        with pytest.raises(ProvisioningError) as exc_info:
            await onboard(user_id, _request("Acme", "Shop"), store)

        assert exc_info.value.step == "app"
        assert exc_info.value.status_code == 409
        assert [o.name for o in await store.select(Organization)] == ["Other"]
        assert await store.select(OrganizationMember, user_id=user_id) == []

    @pytest.mark.asyncio
    async def test_app_failure_rolls_back(self, flaky_store):
        flaky_store.fail("insert", App)

        with pytest.raises(ProvisioningError):
            await onboard(uuid.uuid4(), _request(), flaky_store)

        assert await flaky_store.inner.select(Organization) == []
        assert await flaky_store.inner.select(OrganizationMember) == []
        assert await flaky_store.inner.select(App) == []

    @pytest.mark.asyncio
    async def test_grant_failure_is_soft(self, flaky_store):
        flaky_store.fail("upsert", AppPermission)
        user_id = uuid.uuid4()

        result = await onboard(user_id, _request(), flaky_store)

        assert result.permission_granted is False
        assert await flaky_store.inner.select(AppPermission) == []
        # Still reaches the app as organization owner
        decision = await check_resource_access(user_id, result.app.id, APP_ADMIN, flaky_store.inner)
        assert decision.granted
        assert decision.via == "organization"

    @pytest.mark.asyncio
    async def test_compensation_failure_surfaces_original_error(self, flaky_store):
        flaky_store.fail("insert", OrganizationMember).fail("delete", Organization)

        with pytest.raises(ProvisioningError) as exc_info:
            await onboard(uuid.uuid4(), _request(), flaky_store)

        assert exc_info.value.step == "membership"
        assert "organization_members" in str(exc_info.value.cause)
        # Orphaned organization is left behind for manual cleanup
        assert len(await flaky_store.inner.select(Organization)) == 1


class TestOnboardingRequest:
    @pytest.mark.parametrize("org,app", [("", "Shop"), ("   ", "Shop"), ("Acme", ""), ("Acme", "  ")])
    def test_blank_names_rejected(self, org, app):
        with pytest.raises(ValidationError):
            _request(org, app)

    def test_unknown_platform_rejected(self):
        with pytest.raises(ValidationError):
            _request(platform="windows")

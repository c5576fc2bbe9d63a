"""Tests for tenant context resolution against the SQLite datastore."""

from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from pto_access.auth.context_resolver import TenantContextResolver
from pto_access.auth.token_verifier import Principal
from pto_access.constants.roles import Role
from pto_access.constants.subscription import SubscriptionStatus
from pto_access.platform.errors import (
    NoOrganizationError,
    ProfileNotFoundError,
    UpstreamUnavailableError,
)


@pytest.fixture
def resolver(datastore):
    return TenantContextResolver(datastore, timeout_seconds=2.0)


class TestResolve:
    @pytest.mark.asyncio
    async def test_resolves_profile_and_organization(self, resolver, make_org, make_profile):
        make_org("org-a", subscription_status="trialing")
        profile_id = make_profile("user_lead", org_id="org-a", role="committee_lead")

        context = await resolver.resolve(Principal(subject_id="user_lead"), request_id="req_000000000001")

        assert context.org_id == "org-a"
        assert context.profile_id == profile_id
        assert context.role is Role.COMMITTEE_LEAD
        assert context.organization.subscription_status is SubscriptionStatus.TRIAL
        assert context.request_id == "req_000000000001"

    @pytest.mark.asyncio
    async def test_unknown_subject(self, resolver):
        with pytest.raises(ProfileNotFoundError) as exc_info:
            await resolver.resolve(Principal(subject_id="user_nobody"))
        assert exc_info.value.status_code == 404
        assert exc_info.value.code == "PROFILE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_profile_without_organization(self, resolver, make_profile):
        make_profile("user_floating", org_id=None)

        with pytest.raises(NoOrganizationError) as exc_info:
            await resolver.resolve(Principal(subject_id="user_floating"))
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_unrecognised_role_is_carried_as_none(self, resolver, make_org, make_profile):
        make_org("org-a")
        make_profile("user_odd", org_id="org-a", role="superuser")

        context = await resolver.resolve(Principal(subject_id="user_odd"))

        assert context.role is None
        assert context.profile.raw_role == "superuser"

    @pytest.mark.asyncio
    async def test_context_is_immutable(self, resolver, make_org, make_profile):
        make_org("org-a")
        make_profile("user_vol", org_id="org-a")
        context = await resolver.resolve(Principal(subject_id="user_vol"))

        with pytest.raises(AttributeError):
            context.profile.org_id = "org-b"

    @pytest.mark.asyncio
    async def test_datastore_failure_is_upstream_unavailable(self):
        datastore = Mock()
        datastore.get_profile_with_organization.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        resolver = TenantContextResolver(datastore)

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await resolver.resolve(Principal(subject_id="user_x"))
        assert exc_info.value.stage == "tenant_context"

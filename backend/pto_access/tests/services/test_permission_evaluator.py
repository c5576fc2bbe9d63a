"""
Tests for permission evaluation.

Every decision reduces to "role >= minimum"; inactive profiles, unknown
roles and disabled permissions are always denied.
"""

import pytest

from pto_access.auth.context_resolver import build_request_context
from pto_access.auth.token_verifier import Principal
from pto_access.constants.roles import ROLE_ORDER, Role
from pto_access.platform.errors import PermissionDeniedError, UnknownPermissionError
from pto_access.repositories.datastore import OrganizationRecord, ProfileRecord
from pto_access.services.permission_cache import PermissionCache
from pto_access.services.permission_evaluator import CheckMode, PermissionEvaluator
from pto_access.services.permission_store import PermissionTemplateStore


def make_context(role, org_id="org-a", is_active=True, profile_id="profile-1"):
    return build_request_context(
        Principal(subject_id=f"user_{profile_id}"),
        ProfileRecord(
            profile_id=profile_id,
            subject_id=f"user_{profile_id}",
            org_id=org_id,
            role=role.value if isinstance(role, Role) else role,
            is_active=is_active,
        ),
        OrganizationRecord(org_id=org_id, name="PTO", subscription_status="active"),
        request_id="req_000000000000",
    )


@pytest.fixture
def store(datastore):
    return PermissionTemplateStore(datastore)


@pytest.fixture
def evaluator(store):
    return PermissionEvaluator(PermissionCache(store))


class TestRequireMinRole:
    @pytest.mark.parametrize("role", list(Role))
    @pytest.mark.parametrize("minimum", list(Role))
    def test_grid(self, evaluator, role, minimum):
        context = make_context(role)
        if ROLE_ORDER.index(role) >= ROLE_ORDER.index(minimum):
            evaluator.require_min_role(context, minimum)
        else:
            with pytest.raises(PermissionDeniedError) as exc_info:
                evaluator.require_min_role(context, minimum)
            assert exc_info.value.code == "FORBIDDEN"
            assert exc_info.value.details["required_role"] == minimum.value

    @pytest.mark.parametrize("role", list(Role))
    def test_inactive_profile_always_denied(self, evaluator, role):
        with pytest.raises(PermissionDeniedError) as exc_info:
            evaluator.require_min_role(make_context(role, is_active=False), Role.VOLUNTEER)
        assert exc_info.value.details["reason"] == "inactive_profile"

    def test_unknown_role_denied(self, evaluator):
        with pytest.raises(PermissionDeniedError):
            evaluator.require_min_role(make_context("superuser"), Role.VOLUNTEER)


class TestRoleVariants:
    def test_exact_role(self, evaluator):
        evaluator.require_exact_role(make_context(Role.BOARD_MEMBER), Role.BOARD_MEMBER)
        with pytest.raises(PermissionDeniedError):
            evaluator.require_exact_role(make_context(Role.ADMIN), Role.BOARD_MEMBER)

    def test_any_role(self, evaluator):
        allowed = [Role.VOLUNTEER, Role.ADMIN]
        evaluator.require_any_role(make_context(Role.VOLUNTEER), allowed)
        with pytest.raises(PermissionDeniedError):
            evaluator.require_any_role(make_context(Role.BOARD_MEMBER), allowed)

    def test_owner_passes_without_role(self, evaluator):
        context = make_context(Role.VOLUNTEER, profile_id="profile-owner")
        evaluator.require_ownership_or_role(context, "profile-owner", Role.BOARD_MEMBER)

    def test_non_owner_needs_role(self, evaluator):
        context = make_context(Role.VOLUNTEER, profile_id="profile-other")
        with pytest.raises(PermissionDeniedError):
            evaluator.require_ownership_or_role(context, "profile-owner", Role.BOARD_MEMBER)

        board = make_context(Role.BOARD_MEMBER, profile_id="profile-board")
        evaluator.require_ownership_or_role(board, "profile-owner", Role.BOARD_MEMBER)

    def test_inactive_owner_denied(self, evaluator):
        context = make_context(Role.ADMIN, profile_id="profile-owner", is_active=False)
        with pytest.raises(PermissionDeniedError):
            evaluator.require_ownership_or_role(context, "profile-owner", Role.VOLUNTEER)


class TestCheck:
    @pytest.mark.asyncio
    async def test_template_default(self, evaluator):
        effective = await evaluator.check(make_context(Role.COMMITTEE_LEAD), "can_create_events")
        assert effective.effective_min_role is Role.COMMITTEE_LEAD

        with pytest.raises(PermissionDeniedError) as exc_info:
            await evaluator.check(make_context(Role.VOLUNTEER), "can_create_events")
        assert exc_info.value.details["permission"] == "can_create_events"

    @pytest.mark.asyncio
    async def test_override_raises_requirement(self, evaluator, store):
        store.upsert_override("org-a", "can_create_events", "admin")

        with pytest.raises(PermissionDeniedError):
            await evaluator.check(make_context(Role.BOARD_MEMBER), "can_create_events")
        await evaluator.check(make_context(Role.ADMIN), "can_create_events")

    @pytest.mark.asyncio
    async def test_override_lowers_requirement_for_that_org_only(self, evaluator, store):
        store.upsert_override("org-a", "can_delete_events", "volunteer")

        await evaluator.check(make_context(Role.VOLUNTEER, org_id="org-a"), "can_delete_events")
        with pytest.raises(PermissionDeniedError):
            await evaluator.check(make_context(Role.VOLUNTEER, org_id="org-b"), "can_delete_events")

    @pytest.mark.asyncio
    async def test_override_removal_reverts(self, evaluator, store):
        context = make_context(Role.COMMITTEE_LEAD)
        store.upsert_override("org-a", "can_create_events", "admin")
        with pytest.raises(PermissionDeniedError):
            await evaluator.check(context, "can_create_events")

        store.reset_override("org-a", "can_create_events")
        await evaluator.check(context, "can_create_events")

    @pytest.mark.asyncio
    async def test_disabled_permission_denies_admin(self, evaluator, store):
        store.upsert_override("org-a", "can_send_emails", "volunteer", is_enabled=False)

        with pytest.raises(PermissionDeniedError) as exc_info:
            await evaluator.check(make_context(Role.ADMIN), "can_send_emails")
        assert exc_info.value.details["reason"] == "permission_disabled"

    @pytest.mark.asyncio
    async def test_inactive_profile_denied_before_lookup(self, evaluator):
        with pytest.raises(PermissionDeniedError):
            await evaluator.check(make_context(Role.ADMIN, is_active=False), "can_launch_rockets")

    @pytest.mark.asyncio
    async def test_unknown_permission(self, evaluator):
        with pytest.raises(UnknownPermissionError):
            await evaluator.check(make_context(Role.ADMIN), "can_launch_rockets")


class TestCheckMany:
    @pytest.mark.asyncio
    async def test_all_mode_requires_every_key(self, evaluator):
        context = make_context(Role.COMMITTEE_LEAD)
        granted = await evaluator.check_many(context, ["can_view_events", "can_create_events"])
        assert len(granted) == 2

        with pytest.raises(PermissionDeniedError) as exc_info:
            await evaluator.check_many(context, ["can_create_events", "can_delete_events"])
        assert exc_info.value.details["permissions"] == ["can_delete_events"]

    @pytest.mark.asyncio
    async def test_any_mode_requires_one_key(self, evaluator):
        context = make_context(Role.VOLUNTEER)
        granted = await evaluator.check_many(
            context, ["can_delete_events", "can_view_events"], mode=CheckMode.ANY
        )
        assert [g.permission_key for g in granted] == ["can_view_events"]

        with pytest.raises(PermissionDeniedError):
            await evaluator.check_many(
                context, ["can_delete_events", "can_edit_user_roles"], mode=CheckMode.ANY
            )

    @pytest.mark.asyncio
    async def test_empty_key_list_rejected(self, evaluator):
        with pytest.raises(ValueError):
            await evaluator.check_many(make_context(Role.ADMIN), [])


class TestPermissionMatrix:
    @pytest.mark.asyncio
    async def test_matrix_by_module(self, evaluator):
        matrix = await evaluator.permission_matrix(make_context(Role.COMMITTEE_LEAD))

        assert matrix["events"]["can_view_events"] is True
        assert matrix["events"]["can_create_events"] is True
        assert matrix["events"]["can_delete_events"] is False
        assert matrix["user_management"]["can_edit_user_roles"] is False

    @pytest.mark.asyncio
    async def test_matrix_reflects_overrides(self, evaluator, store):
        store.upsert_override("org-a", "can_delete_events", "committee_lead")
        matrix = await evaluator.permission_matrix(make_context(Role.COMMITTEE_LEAD))
        assert matrix["events"]["can_delete_events"] is True

    @pytest.mark.asyncio
    async def test_inactive_profile_gets_all_false(self, evaluator):
        matrix = await evaluator.permission_matrix(make_context(Role.ADMIN, is_active=False))
        assert not any(allowed for module in matrix.values() for allowed in module.values())

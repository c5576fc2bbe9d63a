"""
Tests for the role hierarchy and subscription vocabulary.

The role order is total and fixed; every comparison goes through
role_at_least(). Unknown roles fail every comparison.
"""

import pytest

from pto_access.constants.roles import (
    ROLE_ORDER,
    Role,
    parse_role,
    require_valid_role,
    role_at_least,
)
from pto_access.constants.subscription import (
    ENTITLED_STATUSES,
    SubscriptionStatus,
    normalize_subscription_status,
)


class TestRoleOrder:
    def test_order_is_lowest_first(self):
        assert ROLE_ORDER == (Role.VOLUNTEER, Role.COMMITTEE_LEAD, Role.BOARD_MEMBER, Role.ADMIN)

    @pytest.mark.parametrize("role", list(Role))
    @pytest.mark.parametrize("minimum", list(Role))
    def test_role_at_least_matches_order_position(self, role, minimum):
        expected = ROLE_ORDER.index(role) >= ROLE_ORDER.index(minimum)
        assert role_at_least(role, minimum) is expected

    @pytest.mark.parametrize("minimum", list(Role))
    def test_missing_role_never_satisfies(self, minimum):
        assert role_at_least(None, minimum) is False

    def test_admin_satisfies_everything(self):
        assert all(role_at_least(Role.ADMIN, r) for r in Role)

    def test_levels_are_strictly_increasing(self):
        levels = [r.level for r in ROLE_ORDER]
        assert levels == sorted(set(levels))


class TestParseRole:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("volunteer", Role.VOLUNTEER),
            ("committee_lead", Role.COMMITTEE_LEAD),
            (" Board_Member ", Role.BOARD_MEMBER),
            ("ADMIN", Role.ADMIN),
            (Role.ADMIN, Role.ADMIN),
        ],
    )
    def test_known_values(self, value, expected):
        assert parse_role(value) is expected

    @pytest.mark.parametrize("value", [None, "", "superadmin", "org:admin", "principal"])
    def test_unknown_values_parse_to_none(self, value):
        assert parse_role(value) is None

    def test_require_valid_role_rejects_unknown(self):
        with pytest.raises(ValueError, match="Invalid role"):
            require_valid_role("owner")


class TestSubscriptionVocabulary:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("trial", SubscriptionStatus.TRIAL),
            ("trialing", SubscriptionStatus.TRIAL),
            ("active", SubscriptionStatus.ACTIVE),
            ("canceled", SubscriptionStatus.CANCELLED),
            ("cancelled", SubscriptionStatus.CANCELLED),
            ("past_due", SubscriptionStatus.EXPIRED),
            ("unpaid", SubscriptionStatus.EXPIRED),
            ("incomplete_expired", SubscriptionStatus.EXPIRED),
            ("paused", SubscriptionStatus.EXPIRED),
        ],
    )
    def test_billing_mapping(self, raw, expected):
        assert normalize_subscription_status(raw) is expected

    @pytest.mark.parametrize("raw", [None, "", "something_new"])
    def test_unknown_status_fails_closed(self, raw):
        assert normalize_subscription_status(raw) is SubscriptionStatus.EXPIRED

    def test_only_trial_and_active_are_entitled(self):
        assert ENTITLED_STATUSES == {SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE}

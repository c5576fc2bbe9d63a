"""Shared constants: roles and subscription vocabulary."""

from pto_access.constants.roles import Role, ROLE_ORDER, parse_role, role_at_least
from pto_access.constants.subscription import (
    SubscriptionStatus,
    ENTITLED_STATUSES,
    normalize_subscription_status,
)

__all__ = [
    "Role",
    "ROLE_ORDER",
    "parse_role",
    "role_at_least",
    "SubscriptionStatus",
    "ENTITLED_STATUSES",
    "normalize_subscription_status",
]

"""
Canonical organization roles for PTO Connect.

IMPORTANT: This is the single source of truth for role ordering.
All role comparisons MUST go through role_at_least(); never compare
role strings directly.

Role Hierarchy (total, fixed):
    VOLUNTEER < COMMITTEE_LEAD < BOARD_MEMBER < ADMIN

"Requires role >= X" is the only comparison the platform makes.
There are no set-based or attribute-based roles.
"""

from enum import Enum
from typing import Optional, Union


class Role(str, Enum):
    """
    Organization roles stored on profiles.

    Keep in sync with the profiles.role values written by signup/admin flows.
    """
    VOLUNTEER = "volunteer"
    COMMITTEE_LEAD = "committee_lead"
    BOARD_MEMBER = "board_member"
    ADMIN = "admin"

    @property
    def level(self) -> int:
        return ROLE_LEVELS[self]


ROLE_LEVELS = {
    Role.VOLUNTEER: 1,
    Role.COMMITTEE_LEAD: 2,
    Role.BOARD_MEMBER: 3,
    Role.ADMIN: 4,
}

# Lowest to highest
ROLE_ORDER = tuple(sorted(ROLE_LEVELS, key=ROLE_LEVELS.get))


def parse_role(value: Union[str, Role, None]) -> Optional[Role]:
    """
    Parse a stored role value into a Role.

    Returns None for missing or unrecognised values. Callers treat None as
    "no role", which fails every comparison.
    """
    if value is None:
        return None
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).strip().lower())
    except ValueError:
        return None


def role_at_least(role: Optional[Role], minimum: Role) -> bool:
    """
    Return True if role satisfies the minimum role.

    A missing role never satisfies anything.
    """
    if role is None:
        return False
    return ROLE_LEVELS[role] >= ROLE_LEVELS[minimum]


def require_valid_role(value: Union[str, Role]) -> Role:
    """Parse a role from admin input, raising ValueError if it is not a known role."""
    role = parse_role(value)
    if role is None:
        valid = ", ".join(r.value for r in ROLE_ORDER)
        raise ValueError(f"Invalid role '{value}'. Must be one of: {valid}")
    return role

"""
Database models.

Importing this package registers every table on Base.metadata.
"""

from pto_access.models.organization import Organization
from pto_access.models.profile import Profile
from pto_access.models.permission import PermissionTemplate, PermissionOverride
from pto_access.models.event import Event

__all__ = [
    "Organization",
    "Profile",
    "PermissionTemplate",
    "PermissionOverride",
    "Event",
]

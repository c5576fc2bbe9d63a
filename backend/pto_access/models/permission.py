"""
Permission template and per-organization override models.

permission_templates holds the platform-wide default minimum role for
each permission key. organization_permissions holds optional per-tenant
overrides; absence of a row means "use the template default".
"""

import uuid

from sqlalchemy import Column, String, Boolean, Text, ForeignKey, UniqueConstraint

from pto_access.db_base import Base
from pto_access.models.base import TimestampMixin


class PermissionTemplate(Base, TimestampMixin):
    """Platform-wide default for one permission key."""

    __tablename__ = "permission_templates"

    permission_key = Column(
        String(100),
        primary_key=True,
        comment="Stable key, e.g. can_create_events"
    )

    module_name = Column(String(100), nullable=False, index=True)
    permission_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    default_min_role = Column(
        String(50),
        nullable=False,
        comment="Minimum role when the organization has no override"
    )

    def __repr__(self) -> str:
        return (
            f"<PermissionTemplate(key={self.permission_key}, "
            f"default_min_role={self.default_min_role})>"
        )


class PermissionOverride(Base, TimestampMixin):
    """Organization-specific override of a template's minimum role."""

    __tablename__ = "organization_permissions"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    org_id = Column(
        String(255),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    permission_key = Column(
        String(100),
        ForeignKey("permission_templates.permission_key", ondelete="CASCADE"),
        nullable=False,
    )

    min_role = Column(String(50), nullable=False)

    is_enabled = Column(
        Boolean,
        nullable=False,
        default=True,
        comment="False disables the permission for every role in the org"
    )

    updated_by = Column(String(255), nullable=True, comment="Profile id of the admin who last edited")

    __table_args__ = (
        UniqueConstraint("org_id", "permission_key", name="uq_org_permission_key"),
    )

    def __repr__(self) -> str:
        return (
            f"<PermissionOverride(org_id={self.org_id}, key={self.permission_key}, "
            f"min_role={self.min_role}, is_enabled={self.is_enabled})>"
        )

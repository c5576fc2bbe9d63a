"""
Profile model: maps an identity-provider subject to an organization role.

SECURITY:
- subject_id comes ONLY from a verified token
- org_id is immutable for the lifetime of the profile; moving a user to
  another organization means creating a new profile
- role is stored as text and parsed through constants.roles.parse_role
"""

import uuid

from sqlalchemy import Column, String, Boolean, ForeignKey

from pto_access.db_base import Base
from pto_access.models.base import TimestampMixin


class Profile(Base, TimestampMixin):
    """A user's membership in exactly one organization."""

    __tablename__ = "profiles"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    subject_id = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Identity provider subject (JWT sub)"
    )

    org_id = Column(
        String(255),
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
        comment="Owning organization; NULL until the user is assigned"
    )

    role = Column(
        String(50),
        nullable=False,
        default="volunteer",
        comment="volunteer, committee_lead, board_member, admin"
    )

    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        comment="Inactive profiles are denied regardless of role"
    )

    email = Column(String(255), nullable=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, org_id={self.org_id}, role={self.role})>"

"""
Base mixins for database models.

Provides common functionality:
- TimestampMixin: created_at, updated_at timestamps
- TenantScopedMixin: org_id for multi-tenant isolation
- generate_uuid: UUID generation for primary keys
"""

import uuid

from sqlalchemy import Column, String, DateTime, func
from sqlalchemy.orm import declared_attr


def generate_uuid() -> str:
    """Generate a UUID4 string for use as a primary key default."""
    return str(uuid.uuid4())


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Timestamp when record was created"
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Timestamp when record was last updated"
    )


class TenantScopedMixin:
    """
    Mixin that adds org_id column for multi-tenant isolation.

    SECURITY: org_id is ONLY taken from the resolved RequestContext.
    NEVER accept org_id from client input (body/query/path).
    org_id is assigned at creation and never reassigned.
    """

    @declared_attr
    def org_id(cls):
        return Column(
            String(255),
            nullable=False,
            index=True,
            comment="Owning organization. Set from request context, never from client input."
        )

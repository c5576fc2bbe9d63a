"""
Organization model for multi-tenant SaaS platform.

An Organization is a tenant: one parent-teacher organization. Every
tenant-scoped row carries exactly one org_id pointing here.

subscription_status is written externally by billing webhooks and only
read by the access pipeline.
"""

import uuid

from sqlalchemy import Column, String, DateTime, Index

from pto_access.db_base import Base
from pto_access.models.base import TimestampMixin


class Organization(Base, TimestampMixin):
    """Tenant record with its subscription state."""

    __tablename__ = "organizations"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Organization id (the tenant id)"
    )

    name = Column(
        String(255),
        nullable=False,
        comment="Display name of the organization"
    )

    subscription_status = Column(
        String(50),
        nullable=False,
        default="trial",
        index=True,
        comment="Canonical status: trial, active, cancelled, expired"
    )

    trial_ends_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Trial expiration (billing side transitions the status)"
    )

    __table_args__ = (
        Index("ix_organizations_name", "name"),
    )

    def __repr__(self) -> str:
        return (
            f"<Organization(id={self.id}, name={self.name}, "
            f"subscription_status={self.subscription_status})>"
        )

"""
Event model: a tenant-scoped resource.

Events are created by committee leads and above and are addressed by id
for update/delete, which is why they go through tenant isolation checks.
"""

from sqlalchemy import Column, String, Text, DateTime

from pto_access.db_base import Base
from pto_access.models.base import TimestampMixin, TenantScopedMixin, generate_uuid


class Event(Base, TimestampMixin, TenantScopedMixin):
    """Organization event."""

    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(255), nullable=True, comment="Profile id of the creator")

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, org_id={self.org_id}, title={self.title})>"

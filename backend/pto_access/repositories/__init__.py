"""Storage access: datastore protocol, SQLAlchemy implementation, repositories."""

from pto_access.repositories.datastore import (
    Datastore,
    SqlAlchemyDatastore,
    ProfileRecord,
    OrganizationRecord,
    PermissionTemplateRecord,
    PermissionOverrideRecord,
    OverrideWrite,
    register_resource,
)
from pto_access.repositories.events import EventRepository, EventRecord

__all__ = [
    "Datastore",
    "SqlAlchemyDatastore",
    "ProfileRecord",
    "OrganizationRecord",
    "PermissionTemplateRecord",
    "PermissionOverrideRecord",
    "OverrideWrite",
    "register_resource",
    "EventRepository",
    "EventRecord",
]

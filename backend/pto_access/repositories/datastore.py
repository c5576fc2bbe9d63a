"""
Datastore interface consumed by the access pipeline.

The pipeline only talks to storage through the Datastore protocol so the
relational store stays an external collaborator. Reads return frozen
record dataclasses (never live ORM objects) so results can cross thread
boundaries after the session that produced them is closed.

SqlAlchemyDatastore is the production implementation. Each call opens a
short-lived session; SQLAlchemyError propagates to the caller, which maps
it to UpstreamUnavailableError.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple, Type

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pto_access.config.permission_templates import TemplateDefinition
from pto_access.models.event import Event
from pto_access.models.organization import Organization
from pto_access.models.permission import PermissionOverride, PermissionTemplate
from pto_access.models.profile import Profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProfileRecord:
    profile_id: str
    subject_id: str
    org_id: Optional[str]
    role: Optional[str]
    is_active: bool
    email: Optional[str] = None


@dataclass(frozen=True)
class OrganizationRecord:
    org_id: str
    name: str
    subscription_status: Optional[str]
    trial_ends_at: Optional[datetime] = None


@dataclass(frozen=True)
class PermissionTemplateRecord:
    permission_key: str
    module_name: str
    permission_name: str
    default_min_role: str
    description: Optional[str] = None


@dataclass(frozen=True)
class PermissionOverrideRecord:
    org_id: str
    permission_key: str
    min_role: str
    is_enabled: bool = True
    updated_by: Optional[str] = None


@dataclass(frozen=True)
class OverrideWrite:
    """One admin override edit."""

    permission_key: str
    min_role: str
    is_enabled: bool = True


class Datastore(Protocol):
    """Storage operations used by the access pipeline and its admin path."""

    def get_profile(self, subject_id: str) -> Optional[ProfileRecord]: ...

    def get_organization(self, org_id: str) -> Optional[OrganizationRecord]: ...

    def get_profile_with_organization(
        self, subject_id: str
    ) -> Tuple[Optional[ProfileRecord], Optional[OrganizationRecord]]: ...

    def get_permission_templates(self) -> List[PermissionTemplateRecord]: ...

    def get_permission_template(self, permission_key: str) -> Optional[PermissionTemplateRecord]: ...

    def get_overrides(self, org_id: str) -> List[PermissionOverrideRecord]: ...

    def get_override(self, org_id: str, permission_key: str) -> Optional[PermissionOverrideRecord]: ...

    def get_resource_org(self, resource_type: str, resource_id: str) -> Optional[str]: ...

    def upsert_overrides(
        self, org_id: str, writes: List[OverrideWrite], updated_by: Optional[str] = None
    ) -> List[PermissionOverrideRecord]: ...

    def delete_override(self, org_id: str, permission_key: str) -> bool: ...

    def update_template_default(
        self, permission_key: str, default_min_role: str
    ) -> Optional[PermissionTemplateRecord]: ...


# Tenant-scoped models addressable by id through get_resource_org()
RESOURCE_MODELS: Dict[str, Type] = {
    "event": Event,
}


def register_resource(resource_type: str, model: Type) -> None:
    """Register a tenant-scoped model (must have id and org_id columns)."""
    RESOURCE_MODELS[resource_type] = model


def _profile_record(profile: Profile) -> ProfileRecord:
    return ProfileRecord(
        profile_id=profile.id,
        subject_id=profile.subject_id,
        org_id=profile.org_id,
        role=profile.role,
        is_active=bool(profile.is_active),
        email=profile.email,
    )


def _organization_record(org: Organization) -> OrganizationRecord:
    return OrganizationRecord(
        org_id=org.id,
        name=org.name,
        subscription_status=org.subscription_status,
        trial_ends_at=org.trial_ends_at,
    )


def _template_record(template: PermissionTemplate) -> PermissionTemplateRecord:
    return PermissionTemplateRecord(
        permission_key=template.permission_key,
        module_name=template.module_name,
        permission_name=template.permission_name,
        default_min_role=template.default_min_role,
        description=template.description,
    )


def _override_record(override: PermissionOverride) -> PermissionOverrideRecord:
    return PermissionOverrideRecord(
        org_id=override.org_id,
        permission_key=override.permission_key,
        min_role=override.min_role,
        is_enabled=bool(override.is_enabled),
        updated_by=override.updated_by,
    )


class SqlAlchemyDatastore:
    """Datastore backed by the relational database."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def get_profile(self, subject_id: str) -> Optional[ProfileRecord]:
        with self._session_factory() as session:
            profile = session.execute(
                select(Profile).where(Profile.subject_id == subject_id)
            ).scalar_one_or_none()
            return _profile_record(profile) if profile else None

    def get_organization(self, org_id: str) -> Optional[OrganizationRecord]:
        with self._session_factory() as session:
            org = session.get(Organization, org_id)
            return _organization_record(org) if org else None

    def get_profile_with_organization(
        self, subject_id: str
    ) -> Tuple[Optional[ProfileRecord], Optional[OrganizationRecord]]:
        """Load a profile and its organization in one query (outer join)."""
        with self._session_factory() as session:
            row = session.execute(
                select(Profile, Organization)
                .outerjoin(Organization, Organization.id == Profile.org_id)
                .where(Profile.subject_id == subject_id)
            ).first()
            if row is None:
                return None, None
            profile, org = row
            return _profile_record(profile), (_organization_record(org) if org else None)

    def get_permission_templates(self) -> List[PermissionTemplateRecord]:
        with self._session_factory() as session:
            templates = session.execute(
                select(PermissionTemplate).order_by(
                    PermissionTemplate.module_name, PermissionTemplate.permission_name
                )
            ).scalars().all()
            return [_template_record(t) for t in templates]

    def get_permission_template(self, permission_key: str) -> Optional[PermissionTemplateRecord]:
        with self._session_factory() as session:
            template = session.get(PermissionTemplate, permission_key)
            return _template_record(template) if template else None

    def get_overrides(self, org_id: str) -> List[PermissionOverrideRecord]:
        with self._session_factory() as session:
            overrides = session.execute(
                select(PermissionOverride).where(PermissionOverride.org_id == org_id)
            ).scalars().all()
            return [_override_record(o) for o in overrides]

    def get_override(self, org_id: str, permission_key: str) -> Optional[PermissionOverrideRecord]:
        with self._session_factory() as session:
            override = session.execute(
                select(PermissionOverride).where(
                    PermissionOverride.org_id == org_id,
                    PermissionOverride.permission_key == permission_key,
                )
            ).scalar_one_or_none()
            return _override_record(override) if override else None

    def get_resource_org(self, resource_type: str, resource_id: str) -> Optional[str]:
        model = RESOURCE_MODELS.get(resource_type)
        if model is None:
            raise ValueError(f"Unknown resource type: {resource_type}")
        with self._session_factory() as session:
            return session.execute(
                select(model.org_id).where(model.id == resource_id)
            ).scalar_one_or_none()

    def upsert_overrides(
        self, org_id: str, writes: List[OverrideWrite], updated_by: Optional[str] = None
    ) -> List[PermissionOverrideRecord]:
        """
        Insert or update overrides in a single transaction.

        A concurrent insert of the same (org, key) trips the unique
        constraint; the whole batch is then replayed once, which finds the
        other writer's row and updates it.
        """
        try:
            return self._apply_overrides(org_id, writes, updated_by)
        except IntegrityError:
            logger.warning(
                "Override insert raced with another writer, retrying as update",
                extra={"org_id": org_id, "count": len(writes)},
            )
            return self._apply_overrides(org_id, writes, updated_by)

    def _apply_overrides(
        self, org_id: str, writes: List[OverrideWrite], updated_by: Optional[str]
    ) -> List[PermissionOverrideRecord]:
        with self._session_factory() as session:
            results = []
            for write in writes:
                override = session.execute(
                    select(PermissionOverride).where(
                        PermissionOverride.org_id == org_id,
                        PermissionOverride.permission_key == write.permission_key,
                    )
                ).scalar_one_or_none()
                if override is None:
                    override = PermissionOverride(org_id=org_id, permission_key=write.permission_key)
                    session.add(override)
                override.min_role = write.min_role
                override.is_enabled = write.is_enabled
                override.updated_by = updated_by
                # Later writes in the batch must see this row
                session.flush()
                results.append(override)
            session.commit()
            return [_override_record(o) for o in results]

    def delete_override(self, org_id: str, permission_key: str) -> bool:
        with self._session_factory() as session:
            override = session.execute(
                select(PermissionOverride).where(
                    PermissionOverride.org_id == org_id,
                    PermissionOverride.permission_key == permission_key,
                )
            ).scalar_one_or_none()
            if override is None:
                return False
            session.delete(override)
            session.commit()
            return True

    def update_template_default(
        self, permission_key: str, default_min_role: str
    ) -> Optional[PermissionTemplateRecord]:
        with self._session_factory() as session:
            template = session.get(PermissionTemplate, permission_key)
            if template is None:
                return None
            template.default_min_role = default_min_role
            session.commit()
            return _template_record(template)

    def seed_templates(self, definitions: Iterable[TemplateDefinition]) -> int:
        """
        Insert templates that do not exist yet.

        Existing rows are left alone so admin edits to defaults survive
        redeploys. Returns the number of rows inserted.
        """
        inserted = 0
        with self._session_factory() as session:
            existing = set(session.execute(select(PermissionTemplate.permission_key)).scalars().all())
            for definition in definitions:
                if definition.permission_key in existing:
                    continue
                session.add(
                    PermissionTemplate(
                        permission_key=definition.permission_key,
                        module_name=definition.module_name,
                        permission_name=definition.permission_name,
                        description=definition.description,
                        default_min_role=definition.default_min_role.value,
                    )
                )
                inserted += 1
            session.commit()
        if inserted:
            logger.info("Seeded permission templates", extra={"inserted": inserted})
        return inserted

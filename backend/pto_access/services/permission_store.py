"""
Permission Template Store.

The canonical, admin-editable mapping of permission_key -> default
minimum role, plus per-organization overrides:

    effective(org, key) = override(org, key) if present else template(key)

Generations:
    A single monotonic counter stamps every change. The store remembers
    the last stamp for the whole template set, for each organization, and
    for each (organization, key). current_generation(org, key) is the
    newest of those, so any write that could change an effective value
    moves it forward. The Permission Cache compares the generation an
    entry was fetched under against this value to detect staleness
    without any broadcast mechanism.

Generations live in process memory. Edits made through another process
are picked up when the cache's soft TTL lapses.
"""

import itertools
import logging
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Dict, Iterable, List, Optional, Tuple

from pto_access.constants.roles import Role, parse_role
from pto_access.platform.errors import NotFoundError, UnknownPermissionError, ValidationError
from pto_access.repositories.datastore import (
    Datastore,
    OverrideWrite,
    PermissionOverrideRecord,
    PermissionTemplateRecord,
)

logger = logging.getLogger(__name__)

SOURCE_TEMPLATE = "template"
SOURCE_OVERRIDE = "override"


@dataclass(frozen=True)
class EffectivePermission:
    """Resolved minimum role for one (org, permission_key), tagged with its generation."""

    org_id: str
    permission_key: str
    effective_min_role: Role
    is_enabled: bool
    source: str
    generation: int
    module_name: Optional[str] = None


@dataclass(frozen=True)
class OrgPermissionSetting:
    """A template merged with the organization's override, for the admin UI."""

    permission_key: str
    module_name: str
    permission_name: str
    description: Optional[str]
    default_min_role: str
    current_min_role: str
    is_enabled: bool
    has_custom_setting: bool


class PermissionTemplateStore:
    """
    Resolves effective permissions and tracks change generations.

    All datastore calls here are blocking; async callers go through
    platform.upstream.call_upstream.
    """

    def __init__(self, datastore: Datastore):
        self._datastore = datastore
        self._counter = itertools.count(1)
        self._generation_lock = Lock()
        self._template_generation = 0
        self._org_generations: Dict[str, int] = {}
        self._key_generations: Dict[Tuple[str, str], int] = {}

    # ------------------------------------------------------------------
    # Generations
    # ------------------------------------------------------------------

    def current_generation(self, org_id: str, permission_key: Optional[str] = None) -> int:
        """Newest change stamp affecting (org_id, permission_key)."""
        with self._generation_lock:
            generation = max(self._template_generation, self._org_generations.get(org_id, 0))
            if permission_key is not None:
                generation = max(generation, self._key_generations.get((org_id, permission_key), 0))
            return generation

    def invalidate(self, org_id: str, permission_key: Optional[str] = None) -> int:
        """
        Record that an override for org_id (one key, or all keys) changed.

        Returns the new generation.
        """
        with self._generation_lock:
            stamp = next(self._counter)
            if permission_key is None:
                self._org_generations[org_id] = stamp
            else:
                self._key_generations[(org_id, permission_key)] = stamp
        logger.info(
            "Permission generation advanced",
            extra={"org_id": org_id, "permission_key": permission_key, "generation": stamp},
        )
        return stamp

    def invalidate_templates(self) -> int:
        """Record that a platform-wide template default changed."""
        with self._generation_lock:
            stamp = next(self._counter)
            self._template_generation = stamp
        logger.info("Permission template generation advanced", extra={"generation": stamp})
        return stamp

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _resolve(
        self,
        org_id: str,
        template: PermissionTemplateRecord,
        override: Optional[PermissionOverrideRecord],
        generation: int,
    ) -> EffectivePermission:
        raw_role = override.min_role if override else template.default_min_role
        role = parse_role(raw_role)
        is_enabled = override.is_enabled if override else True

        if role is None:
            # Unparseable stored role: disable rather than guess
            logger.error(
                "Invalid stored minimum role; permission disabled",
                extra={
                    "org_id": org_id,
                    "permission_key": template.permission_key,
                    "stored_role": raw_role,
                },
            )
            role = Role.ADMIN
            is_enabled = False

        return EffectivePermission(
            org_id=org_id,
            permission_key=template.permission_key,
            effective_min_role=role,
            is_enabled=is_enabled,
            source=SOURCE_OVERRIDE if override else SOURCE_TEMPLATE,
            generation=generation,
            module_name=template.module_name,
        )

    def fetch_effective(self, org_id: str, permission_key: str) -> EffectivePermission:
        """
        Resolve the effective permission for one key.

        The generation is read before the datastore so a concurrent edit
        leaves the result tagged as stale rather than fresh.

        Raises:
            UnknownPermissionError: no template defines permission_key
        """
        generation = self.current_generation(org_id, permission_key)

        template = self._datastore.get_permission_template(permission_key)
        if template is None:
            logger.error(
                "Unknown permission key requested",
                extra={"org_id": org_id, "permission_key": permission_key},
            )
            raise UnknownPermissionError(permission_key)

        override = self._datastore.get_override(org_id, permission_key)
        return self._resolve(org_id, template, override, generation)

    def fetch_all_effective(self, org_id: str) -> Dict[str, EffectivePermission]:
        """Bulk-resolve every template for an organization (two reads)."""
        generation = self.current_generation(org_id)
        templates = self._datastore.get_permission_templates()
        overrides = {o.permission_key: o for o in self._datastore.get_overrides(org_id)}

        result: Dict[str, EffectivePermission] = OrderedDict()
        for template in templates:
            key_generation = max(generation, self.current_generation(org_id, template.permission_key))
            result[template.permission_key] = self._resolve(
                org_id, template, overrides.get(template.permission_key), key_generation
            )
        return result

    # ------------------------------------------------------------------
    # Administrative edit path
    # ------------------------------------------------------------------

    def list_templates(self) -> List[PermissionTemplateRecord]:
        return self._datastore.get_permission_templates()

    def list_org_settings(self, org_id: str) -> List[OrgPermissionSetting]:
        """Templates merged with the organization's overrides."""
        templates = self._datastore.get_permission_templates()
        overrides = {o.permission_key: o for o in self._datastore.get_overrides(org_id)}

        settings = []
        for template in templates:
            override = overrides.get(template.permission_key)
            settings.append(
                OrgPermissionSetting(
                    permission_key=template.permission_key,
                    module_name=template.module_name,
                    permission_name=template.permission_name,
                    description=template.description,
                    default_min_role=template.default_min_role,
                    current_min_role=override.min_role if override else template.default_min_role,
                    is_enabled=override.is_enabled if override else True,
                    has_custom_setting=override is not None,
                )
            )
        return settings

    @staticmethod
    def _validated_role(value, field: str) -> Role:
        role = parse_role(value)
        if role is None:
            raise ValidationError("Invalid role specified", field=field, details={"role": value})
        return role

    def upsert_override(
        self,
        org_id: str,
        permission_key: str,
        min_role: str,
        is_enabled: bool = True,
        updated_by: Optional[str] = None,
    ) -> PermissionOverrideRecord:
        """Create or replace one organization override, then invalidate it."""
        if self._datastore.get_permission_template(permission_key) is None:
            raise NotFoundError("Permission template not found", details={"permission": permission_key})
        role = self._validated_role(min_role, "min_role_required")

        records = self._datastore.upsert_overrides(
            org_id,
            [OverrideWrite(permission_key=permission_key, min_role=role.value, is_enabled=is_enabled)],
            updated_by=updated_by,
        )
        self.invalidate(org_id, permission_key)
        logger.info(
            "Permission override updated",
            extra={
                "org_id": org_id,
                "permission_key": permission_key,
                "min_role": role.value,
                "is_enabled": is_enabled,
                "updated_by": updated_by,
            },
        )
        return records[0]

    def bulk_upsert_overrides(
        self,
        org_id: str,
        writes: Iterable[OverrideWrite],
        updated_by: Optional[str] = None,
    ) -> List[PermissionOverrideRecord]:
        """
        Validate every write first, then apply them in one transaction.

        Nothing is written if any entry is invalid.
        """
        writes = list(writes)
        known = {t.permission_key for t in self._datastore.get_permission_templates()}

        validated = []
        seen = set()
        for write in writes:
            if not write.permission_key or write.permission_key not in known:
                raise ValidationError(
                    "Invalid permission data",
                    field="permission_key",
                    details={"permission": write.permission_key},
                )
            if write.permission_key in seen:
                raise ValidationError(
                    "Duplicate permission in bulk update",
                    field="permission_key",
                    details={"permission": write.permission_key},
                )
            seen.add(write.permission_key)
            role = self._validated_role(write.min_role, "min_role_required")
            validated.append(
                OverrideWrite(permission_key=write.permission_key, min_role=role.value, is_enabled=write.is_enabled)
            )

        records = self._datastore.upsert_overrides(org_id, validated, updated_by=updated_by)
        for write in validated:
            self.invalidate(org_id, write.permission_key)
        logger.info(
            "Bulk permission overrides updated",
            extra={"org_id": org_id, "count": len(validated), "updated_by": updated_by},
        )
        return records

    def reset_override(self, org_id: str, permission_key: str) -> bool:
        """Remove an override so the template default applies again."""
        removed = self._datastore.delete_override(org_id, permission_key)
        if removed:
            self.invalidate(org_id, permission_key)
        return removed

    def update_template_default(self, permission_key: str, default_min_role: str) -> PermissionTemplateRecord:
        """Change a platform-wide default; affects every org without an override."""
        role = self._validated_role(default_min_role, "default_min_role")
        record = self._datastore.update_template_default(permission_key, role.value)
        if record is None:
            raise NotFoundError("Permission template not found", details={"permission": permission_key})
        self.invalidate_templates()
        return record

"""
Default permission template loader.

Loads the platform-wide permission templates from
config/permission_templates.yml. These are the seed rows for the
permission_templates table; organization admins edit overrides on top.

Usage:
    from pto_access.config.permission_templates import get_permission_templates_loader

    loader = get_permission_templates_loader()
    for template in loader.get_templates():
        ...
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

import yaml

from pto_access.constants.roles import Role, require_valid_role

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "permission_templates.yml"


@dataclass(frozen=True)
class TemplateDefinition:
    """One permission template as declared in YAML."""

    permission_key: str
    module_name: str
    permission_name: str
    default_min_role: Role
    description: Optional[str] = None


class PermissionTemplatesLoader:
    """
    Thread-safe loader for permission_templates.yml.

    Invalid entries raise at load time; a malformed seed file is a
    deployment error and must not be silently skipped.
    """

    def __init__(self, config_path: Optional[str] = None):
        self._config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._templates: List[TemplateDefinition] = []
        self._load_lock = Lock()
        self._load()

    def _load(self) -> None:
        with self._load_lock:
            logger.info("Loading permission templates from %s", self._config_path)
            with open(self._config_path, "r") as f:
                raw: Dict[str, Any] = yaml.safe_load(f) or {}

            templates: List[TemplateDefinition] = []
            seen = set()
            for module_name, permissions in (raw.get("modules") or {}).items():
                for permission_key, entry in (permissions or {}).items():
                    if permission_key in seen:
                        raise ValueError(f"Duplicate permission key in templates: {permission_key}")
                    seen.add(permission_key)
                    entry = entry or {}
                    templates.append(
                        TemplateDefinition(
                            permission_key=permission_key,
                            module_name=module_name,
                            permission_name=entry.get("name", permission_key),
                            default_min_role=require_valid_role(entry.get("default_min_role", "")),
                            description=entry.get("description"),
                        )
                    )

            self._templates = templates
            logger.info("Loaded %d permission templates", len(templates))

    def reload(self) -> None:
        """Re-read the YAML from disk."""
        self._load()

    def get_templates(self) -> List[TemplateDefinition]:
        return list(self._templates)

    def get_template(self, permission_key: str) -> Optional[TemplateDefinition]:
        for template in self._templates:
            if template.permission_key == permission_key:
                return template
        return None


_loader_instance: Optional[PermissionTemplatesLoader] = None
_loader_lock = Lock()


def get_permission_templates_loader() -> PermissionTemplatesLoader:
    """Get the singleton loader for the bundled templates file."""
    global _loader_instance
    if _loader_instance is None:
        with _loader_lock:
            if _loader_instance is None:
                _loader_instance = PermissionTemplatesLoader()
    return _loader_instance

"""
Permission evaluation for a resolved RequestContext.

Two forms of authorization:
- role-gated: require_min_role(context, Role.BOARD_MEMBER)
- permission-gated: await check(context, "can_create_events"), which
  resolves the org's effective minimum role through the PermissionCache

Every decision reduces to role_at_least(). All paths fail closed:
- inactive profile -> denied
- unrecognised role -> denied
- override disabled -> denied
- unknown permission key -> UnknownPermissionError (configuration gap)
- datastore failure -> UpstreamUnavailableError (never a silent allow)
"""

import logging
from collections import OrderedDict
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pto_access.auth.context_resolver import RequestContext
from pto_access.constants.roles import ROLE_ORDER, Role, role_at_least
from pto_access.platform.errors import PermissionDeniedError
from pto_access.services.permission_cache import PermissionCache
from pto_access.services.permission_store import EffectivePermission

logger = logging.getLogger(__name__)


class CheckMode(str, Enum):
    ALL = "all"
    ANY = "any"


def _deny(context: RequestContext, reason: str, **extra) -> PermissionDeniedError:
    log_extra = context.log_extra()
    log_extra.update(extra)
    log_extra["reason"] = reason
    logger.warning("Access denied", extra=log_extra)
    return PermissionDeniedError(details={"reason": reason, **{k: v for k, v in extra.items() if v is not None}})


def _role_name(role: Optional[Role]) -> Optional[str]:
    return role.value if role else None


def permission_allows(context: RequestContext, effective: EffectivePermission) -> bool:
    """Pure decision for an already-resolved permission."""
    if not context.profile.is_active or not effective.is_enabled:
        return False
    return role_at_least(context.role, effective.effective_min_role)


class PermissionEvaluator:
    """
    Usage:
        evaluator = PermissionEvaluator(cache)
        evaluator.require_min_role(context, Role.COMMITTEE_LEAD)
        await evaluator.check(context, "can_delete_events")
    """

    def __init__(self, cache: PermissionCache):
        self._cache = cache

    @staticmethod
    def _require_active(context: RequestContext) -> None:
        if not context.profile.is_active:
            raise _deny(context, "inactive_profile")

    def require_min_role(self, context: RequestContext, min_role: Role) -> None:
        """Raise PermissionDeniedError unless the caller's role >= min_role."""
        self._require_active(context)
        if not role_at_least(context.role, min_role):
            raise _deny(
                context,
                "insufficient_role",
                required_role=min_role.value,
                user_role=_role_name(context.role),
            )

    def require_exact_role(self, context: RequestContext, role: Role) -> None:
        self._require_active(context)
        if context.role is not role:
            raise _deny(
                context,
                "exact_role_required",
                required_role=role.value,
                user_role=_role_name(context.role),
            )

    def require_any_role(self, context: RequestContext, roles: Iterable[Role]) -> None:
        roles = list(roles)
        self._require_active(context)
        if context.role is None or context.role not in roles:
            raise _deny(
                context,
                "role_not_allowed",
                allowed_roles=[r.value for r in roles],
                user_role=_role_name(context.role),
            )

    def require_ownership_or_role(
        self, context: RequestContext, owner_profile_id: Optional[str], min_role: Role
    ) -> None:
        """The resource owner passes; everyone else needs min_role."""
        self._require_active(context)
        if owner_profile_id and owner_profile_id == context.profile_id:
            return
        if not role_at_least(context.role, min_role):
            raise _deny(
                context,
                "not_owner_or_insufficient_role",
                required_role=min_role.value,
                user_role=_role_name(context.role),
            )

    async def check(self, context: RequestContext, permission_key: str) -> EffectivePermission:
        """
        Authorize the caller for permission_key in their organization.

        Returns the EffectivePermission that allowed the request.

        Raises:
            PermissionDeniedError: role too low, inactive profile, or disabled permission
            UnknownPermissionError: no template for permission_key
            UpstreamUnavailableError: cache-miss fetch failed
        """
        self._require_active(context)
        effective = await self._cache.get(context.org_id, permission_key)

        if not effective.is_enabled:
            raise _deny(context, "permission_disabled", permission=permission_key)

        if not role_at_least(context.role, effective.effective_min_role):
            raise _deny(
                context,
                "insufficient_role",
                permission=permission_key,
                required_role=effective.effective_min_role.value,
                user_role=_role_name(context.role),
            )

        logger.debug(
            "Permission granted",
            extra={**context.log_extra(), "permission": permission_key, "source": effective.source},
        )
        return effective

    async def check_many(
        self,
        context: RequestContext,
        permission_keys: Iterable[str],
        mode: CheckMode = CheckMode.ALL,
    ) -> List[EffectivePermission]:
        """
        ALL: every key must pass. ANY: at least one must pass.

        Returns the permissions that passed.
        """
        permission_keys = list(permission_keys)
        if not permission_keys:
            raise ValueError("permission_keys must not be empty")
        self._require_active(context)

        granted = []
        denied = []
        for permission_key in permission_keys:
            effective = await self._cache.get(context.org_id, permission_key)
            if permission_allows(context, effective):
                granted.append(effective)
            else:
                denied.append(permission_key)

        if CheckMode(mode) is CheckMode.ALL and denied:
            raise _deny(context, "missing_permissions", permissions=denied)
        if CheckMode(mode) is CheckMode.ANY and not granted:
            raise _deny(context, "missing_permissions", permissions=denied)
        return granted

    async def permission_matrix(self, context: RequestContext) -> Dict[str, Dict[str, bool]]:
        """
        module_name -> permission_key -> allowed, for UI gating.

        Inactive profiles and unrecognised roles get an all-False matrix.
        """
        effective_by_key = await self._cache.get_all(context.org_id)
        matrix: Dict[str, Dict[str, bool]] = OrderedDict()
        for permission_key, effective in effective_by_key.items():
            module = effective.module_name or "general"
            matrix.setdefault(module, OrderedDict())[permission_key] = permission_allows(context, effective)
        return matrix


def describe_roles() -> List[str]:
    """Valid role names, lowest first (admin UI dropdowns)."""
    return [role.value for role in ROLE_ORDER]

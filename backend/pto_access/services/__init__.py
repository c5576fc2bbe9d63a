"""Authorization services: permission store, cache, evaluator, subscription gate, tenant isolation."""

from pto_access.services.permission_store import (
    EffectivePermission,
    OrgPermissionSetting,
    PermissionTemplateStore,
)
from pto_access.services.permission_cache import PermissionCache
from pto_access.services.permission_evaluator import CheckMode, PermissionEvaluator, permission_allows
from pto_access.services.subscription_gate import SubscriptionGate
from pto_access.services.tenant_isolation import TenantIsolationEnforcer, scope_payload

__all__ = [
    "EffectivePermission",
    "OrgPermissionSetting",
    "PermissionTemplateStore",
    "PermissionCache",
    "CheckMode",
    "PermissionEvaluator",
    "permission_allows",
    "SubscriptionGate",
    "TenantIsolationEnforcer",
    "scope_payload",
]

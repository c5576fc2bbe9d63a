"""
Request access pipeline.

Stages run in a fixed order for every protected request:

    authenticate (token -> Principal -> RequestContext)
    -> gate_subscription
    -> authorize (min role or permission key)
    -> handler (assert_resource_ownership for id-addressed mutations)
    -> build_envelope

Each stage raises a typed AppError; the envelope exception handlers turn
it into the response. The RequestContext is returned to the route through
FastAPI dependencies and passed explicitly from there on. Only the request
id is kept on request.state, for logging.

Usage:
    @router.post("/api/events")
    async def create_event(
        request: Request,
        context: RequestContext = Depends(require_permission("can_create_events")),
    ):
        ...
"""

import logging
from typing import Any, Callable, Optional

from fastapi import Request

from pto_access.api.envelope import (
    Pagination,
    StandardResponse,
    envelope_for_request,
    request_id_for,
)
from pto_access.auth.context_resolver import RequestContext, TenantContextResolver
from pto_access.auth.token_verifier import IdentityProvider, JWTIdentityProvider, TokenVerifier
from pto_access.config.settings import AccessSettings
from pto_access.constants.roles import Role
from pto_access.platform.errors import generate_correlation_id
from pto_access.repositories.datastore import Datastore
from pto_access.services.permission_cache import PermissionCache
from pto_access.services.permission_evaluator import PermissionEvaluator
from pto_access.services.permission_store import EffectivePermission, PermissionTemplateStore
from pto_access.services.subscription_gate import SubscriptionGate
from pto_access.services.tenant_isolation import TenantIsolationEnforcer

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware:
    """Assigns each request a req_ correlation id and echoes it in the response."""

    async def __call__(self, request: Request, call_next):
        request.state.request_id = generate_correlation_id()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        return response


class AccessControl:
    """
    The composed pipeline. One instance per application, shared by all
    requests; only its PermissionCache holds mutable state.
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        resolver: TenantContextResolver,
        store: PermissionTemplateStore,
        cache: PermissionCache,
        evaluator: PermissionEvaluator,
        gate: SubscriptionGate,
        isolation: TenantIsolationEnforcer,
        api_version: str = "v1",
    ):
        self.verifier = verifier
        self.resolver = resolver
        self.store = store
        self.cache = cache
        self.evaluator = evaluator
        self.gate = gate
        self.isolation = isolation
        self.api_version = api_version

    @classmethod
    def build(
        cls,
        settings: AccessSettings,
        datastore: Datastore,
        identity_provider: Optional[IdentityProvider] = None,
    ) -> "AccessControl":
        """Wire every stage from settings and a datastore."""
        provider = identity_provider or JWTIdentityProvider.from_settings(settings)
        store = PermissionTemplateStore(datastore)
        cache = PermissionCache(
            store,
            timeout_seconds=settings.datastore_timeout_seconds,
            soft_ttl_seconds=settings.cache_soft_ttl_seconds,
            stale_window_seconds=settings.cache_stale_window_seconds,
            max_entries=settings.cache_max_entries,
        )
        return cls(
            verifier=TokenVerifier(provider, timeout_seconds=settings.auth_timeout_seconds),
            resolver=TenantContextResolver(datastore, timeout_seconds=settings.datastore_timeout_seconds),
            store=store,
            cache=cache,
            evaluator=PermissionEvaluator(cache),
            gate=SubscriptionGate(),
            isolation=TenantIsolationEnforcer(datastore, timeout_seconds=settings.datastore_timeout_seconds),
            api_version=settings.api_version,
        )

    async def authenticate(self, request: Request) -> RequestContext:
        """Verify the bearer credential and resolve the caller's tenant context."""
        principal = await self.verifier.verify(request.headers.get("Authorization"))
        return await self.resolver.resolve(principal, request_id=request_id_for(request))

    def gate_subscription(self, context: RequestContext) -> None:
        self.gate.allow(context)

    def authorize_min_role(self, context: RequestContext, min_role: Role) -> None:
        self.evaluator.require_min_role(context, min_role)

    async def authorize_permission(self, context: RequestContext, permission_key: str) -> EffectivePermission:
        return await self.evaluator.check(context, permission_key)

    def assert_org_ownership(self, context: RequestContext, resource_org_id: Optional[str]) -> None:
        """For callers that already loaded the resource and know its org_id."""
        self.isolation.assert_owned(context, resource_org_id)

    async def assert_resource_ownership(
        self, context: RequestContext, resource_type: str, resource_id: str
    ) -> None:
        """Look up the resource's org_id, then apply assert_org_ownership."""
        await self.isolation.assert_resource_owned(context, resource_type, resource_id)

    def build_envelope(
        self, request: Request, data: Any = None, pagination: Optional[Pagination] = None
    ) -> StandardResponse:
        return envelope_for_request(request, data, pagination=pagination, version=self.api_version)


def get_access_control(request: Request) -> AccessControl:
    """FastAPI dependency: the application's AccessControl."""
    access = getattr(request.app.state, "access_control", None)
    if access is None:
        raise RuntimeError("AccessControl not configured on app.state")
    return access


def require_context(subscription: bool = True) -> Callable:
    """Dependency factory: authenticated RequestContext, optionally subscription-gated."""

    async def dependency(request: Request) -> RequestContext:
        access = get_access_control(request)
        context = await access.authenticate(request)
        if subscription:
            access.gate_subscription(context)
        return context

    return dependency


def require_min_role(min_role: Role, subscription: bool = True) -> Callable:
    """Dependency factory: authenticated, gated, and role >= min_role."""

    async def dependency(request: Request) -> RequestContext:
        access = get_access_control(request)
        context = await access.authenticate(request)
        if subscription:
            access.gate_subscription(context)
        access.authorize_min_role(context, min_role)
        return context

    return dependency


def require_permission(permission_key: str, subscription: bool = True) -> Callable:
    """Dependency factory: authenticated, gated, and allowed permission_key in the caller's org."""

    async def dependency(request: Request) -> RequestContext:
        access = get_access_control(request)
        context = await access.authenticate(request)
        if subscription:
            access.gate_subscription(context)
        await access.authorize_permission(context, permission_key)
        return context

    return dependency

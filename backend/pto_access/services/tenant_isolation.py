"""
Tenant isolation for id-addressed resource access.

A resource is reachable only by callers in the organization stamped on
its row. Callers cannot tell "does not exist" from "exists in another
organization": both raise a NotFoundError with identical status and
code. The cross-tenant case is logged distinctly as a security event.

Creation payloads are scoped the other way: the caller's org_id is
stamped onto them, replacing any org_id the client supplied.
"""

import logging
from typing import Any, Dict, Optional

from pto_access.auth.context_resolver import RequestContext
from pto_access.platform.errors import CrossTenantError, NotFoundError
from pto_access.platform.upstream import call_upstream
from pto_access.repositories.datastore import Datastore

logger = logging.getLogger(__name__)

CROSS_TENANT_EVENT = "cross_tenant.access_attempted"


class TenantIsolationEnforcer:
    """
    Usage:
        isolation = TenantIsolationEnforcer(datastore, timeout_seconds=2.0)
        await isolation.assert_resource_owned(context, "event", event_id)
    """

    def __init__(self, datastore: Datastore, timeout_seconds: float = 2.0):
        self._datastore = datastore
        self._timeout = timeout_seconds

    def assert_owned(
        self,
        context: RequestContext,
        resource_org_id: Optional[str],
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> None:
        if resource_org_id is None:
            raise NotFoundError()

        if resource_org_id != context.org_id:
            logger.warning(
                "Cross-tenant access attempt blocked",
                extra={
                    **context.log_extra(),
                    "event_type": CROSS_TENANT_EVENT,
                    "resource_org_id": resource_org_id,
                    "resource_type": resource_type,
                    "resource_id": resource_id,
                },
            )
            raise CrossTenantError(resource_org_id=resource_org_id)

    async def assert_resource_owned(
        self, context: RequestContext, resource_type: str, resource_id: str
    ) -> None:
        """Look up the resource's org and assert it matches the caller's."""
        resource_org_id = await call_upstream(
            "tenant_isolation",
            self._timeout,
            self._datastore.get_resource_org,
            resource_type,
            resource_id,
        )
        self.assert_owned(context, resource_org_id, resource_type, resource_id)


def scope_payload(context: RequestContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of payload with org_id forced to the caller's organization."""
    scoped = dict(payload)
    supplied = scoped.get("org_id")
    if supplied is not None and supplied != context.org_id:
        logger.warning(
            "Client-supplied org_id replaced",
            extra={**context.log_extra(), "supplied_org_id": supplied},
        )
    scoped["org_id"] = context.org_id
    return scoped

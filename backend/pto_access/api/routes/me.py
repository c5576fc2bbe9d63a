"""
Caller-facing access information.

GET /api/me/permissions returns the caller's role and a
module -> permission_key -> bool matrix the frontend uses to show or hide
controls. It is informational only; every action is re-checked server-side.
"""

from fastapi import APIRouter, Depends, Request

from pto_access.api.envelope import StandardResponse
from pto_access.auth.context_resolver import RequestContext
from pto_access.platform.access import AccessControl, get_access_control, require_context

router = APIRouter(prefix="/api/me", tags=["me"])


@router.get("/permissions", response_model=StandardResponse)
async def get_my_permissions(
    request: Request,
    context: RequestContext = Depends(require_context(subscription=False)),
    access: AccessControl = Depends(get_access_control),
):
    matrix = await access.evaluator.permission_matrix(context)
    organization = context.organization
    return access.build_envelope(
        request,
        {
            "org_id": context.org_id,
            "role": context.role.value if context.role else None,
            "is_active": context.profile.is_active,
            "subscription_status": organization.subscription_status.value if organization else None,
            "subscription_active": access.gate.is_entitled(context),
            "permissions": matrix,
        },
    )

"""
Organization permission administration.

SECURITY: All routes require the admin role in the caller's organization.
Overrides are always written for context.org_id; an admin can never edit
another organization's settings.

These routes are not subscription-gated so an organization with a lapsed
subscription can still review and adjust who may do what.

Every write advances the permission generation for the affected keys, so
the next check in this process sees the new value.
"""

import logging
from collections import OrderedDict
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from pto_access.api.envelope import StandardResponse
from pto_access.auth.context_resolver import RequestContext
from pto_access.constants.roles import Role
from pto_access.platform.access import AccessControl, get_access_control, require_min_role
from pto_access.platform.errors import NotFoundError
from pto_access.platform.upstream import call_upstream
from pto_access.repositories.datastore import OverrideWrite
from pto_access.services.permission_evaluator import describe_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/organization-permissions", tags=["admin-permissions"])

require_org_admin = require_min_role(Role.ADMIN, subscription=False)


class UpdatePermissionRequest(BaseModel):
    """Request to set one permission's minimum role for the organization."""
    min_role_required: str = Field(..., description="volunteer, committee_lead, board_member or admin")
    is_enabled: bool = Field(True, description="False disables the permission for every role")


class BulkPermissionItem(BaseModel):
    permission_key: str = Field(..., min_length=1, max_length=100)
    min_role_required: str
    is_enabled: bool = True


class BulkUpdateRequest(BaseModel):
    permissions: List[BulkPermissionItem] = Field(..., min_length=1)


class PermissionSettingResponse(BaseModel):
    permission_key: str
    permission_name: str
    description: Optional[str] = None
    default_min_role: str
    current_min_role: str
    is_enabled: bool
    has_custom_setting: bool


def _timeout(request: Request) -> float:
    return request.app.state.settings.datastore_timeout_seconds


@router.get("/templates", response_model=StandardResponse)
async def list_permission_templates(
    request: Request,
    context: RequestContext = Depends(require_org_admin),
    access: AccessControl = Depends(get_access_control),
):
    """All permission templates grouped by module."""
    templates = await call_upstream("admin_permissions", _timeout(request), access.store.list_templates)

    grouped = OrderedDict()
    for template in templates:
        grouped.setdefault(template.module_name, []).append(
            {
                "permission_key": template.permission_key,
                "permission_name": template.permission_name,
                "description": template.description,
                "default_min_role": template.default_min_role,
            }
        )
    return access.build_envelope(request, grouped)


@router.get("/cache-stats", response_model=StandardResponse)
async def get_permission_cache_stats(
    request: Request,
    context: RequestContext = Depends(require_org_admin),
    access: AccessControl = Depends(get_access_control),
):
    """Process-wide permission cache counters. Aggregates only; no per-org data."""
    return access.build_envelope(request, access.cache.stats())


@router.get("", response_model=StandardResponse)
async def get_organization_permissions(
    request: Request,
    context: RequestContext = Depends(require_org_admin),
    access: AccessControl = Depends(get_access_control),
):
    """Templates merged with this organization's overrides, grouped by module."""
    settings = await call_upstream(
        "admin_permissions", _timeout(request), access.store.list_org_settings, context.org_id
    )

    grouped = OrderedDict()
    for setting in settings:
        grouped.setdefault(setting.module_name, []).append(
            PermissionSettingResponse(
                permission_key=setting.permission_key,
                permission_name=setting.permission_name,
                description=setting.description,
                default_min_role=setting.default_min_role,
                current_min_role=setting.current_min_role,
                is_enabled=setting.is_enabled,
                has_custom_setting=setting.has_custom_setting,
            ).model_dump()
        )

    return access.build_envelope(
        request,
        {
            "org_id": context.org_id,
            "permissions": grouped,
            "valid_roles": describe_roles(),
        },
    )


@router.put("/{permission_key}", response_model=StandardResponse)
async def update_organization_permission(
    request: Request,
    permission_key: str,
    body: UpdatePermissionRequest,
    context: RequestContext = Depends(require_org_admin),
    access: AccessControl = Depends(get_access_control),
):
    record = await call_upstream(
        "admin_permissions",
        _timeout(request),
        access.store.upsert_override,
        context.org_id,
        permission_key,
        body.min_role_required,
        is_enabled=body.is_enabled,
        updated_by=context.profile_id,
    )
    access.cache.invalidate(context.org_id, permission_key)
    return access.build_envelope(
        request,
        {
            "permission_key": record.permission_key,
            "min_role_required": record.min_role,
            "is_enabled": record.is_enabled,
        },
    )


@router.post("/bulk-update", response_model=StandardResponse)
async def bulk_update_organization_permissions(
    request: Request,
    body: BulkUpdateRequest,
    context: RequestContext = Depends(require_org_admin),
    access: AccessControl = Depends(get_access_control),
):
    """Apply several overrides at once. Nothing is written if any entry is invalid."""
    writes = [
        OverrideWrite(
            permission_key=item.permission_key,
            min_role=item.min_role_required,
            is_enabled=item.is_enabled,
        )
        for item in body.permissions
    ]
    records = await call_upstream(
        "admin_permissions",
        _timeout(request),
        access.store.bulk_upsert_overrides,
        context.org_id,
        writes,
        updated_by=context.profile_id,
    )
    for record in records:
        access.cache.invalidate(context.org_id, record.permission_key)

    return access.build_envelope(request, {"updated_count": len(records)})


@router.delete("/{permission_key}", response_model=StandardResponse)
async def reset_organization_permission(
    request: Request,
    permission_key: str,
    context: RequestContext = Depends(require_org_admin),
    access: AccessControl = Depends(get_access_control),
):
    """Remove the override so the platform default applies again."""
    removed = await call_upstream(
        "admin_permissions", _timeout(request), access.store.reset_override, context.org_id, permission_key
    )
    if not removed:
        raise NotFoundError("No custom setting for this permission", details={"permission": permission_key})
    access.cache.invalidate(context.org_id, permission_key)
    return access.build_envelope(request, {"permission_key": permission_key, "reset": True})

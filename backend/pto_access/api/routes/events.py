"""
Event API routes.

SECURITY:
- org_id always comes from the RequestContext, never from the request
- Delete is id-addressed and passes tenant isolation before touching storage
- Every route is subscription-gated and permission-gated
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field

from pto_access.api.envelope import StandardResponse, paginate
from pto_access.auth.context_resolver import RequestContext
from pto_access.platform.access import AccessControl, get_access_control, require_permission
from pto_access.platform.errors import NotFoundError
from pto_access.platform.upstream import call_upstream
from pto_access.repositories.events import EventRecord, EventRepository
from pto_access.services.tenant_isolation import scope_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["events"])


class CreateEventRequest(BaseModel):
    """Request to create an event. Any org_id supplied is replaced by the caller's."""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    starts_at: Optional[datetime] = None
    org_id: Optional[str] = Field(None, description="Ignored; events are created in the caller's organization")


class EventResponse(BaseModel):
    id: str
    org_id: str
    title: str
    description: Optional[str] = None
    starts_at: Optional[datetime] = None
    created_by: Optional[str] = None


def get_event_repository(request: Request) -> EventRepository:
    repository = getattr(request.app.state, "event_repository", None)
    if repository is None:
        raise RuntimeError("EventRepository not configured on app.state")
    return repository


def _datastore_timeout(request: Request) -> float:
    return request.app.state.settings.datastore_timeout_seconds


def _event_response(record: EventRecord) -> dict:
    return EventResponse(
        id=record.id,
        org_id=record.org_id,
        title=record.title,
        description=record.description,
        starts_at=record.starts_at,
        created_by=record.created_by,
    ).model_dump(mode="json")


@router.post("", status_code=status.HTTP_201_CREATED, response_model=StandardResponse)
async def create_event(
    request: Request,
    body: CreateEventRequest,
    context: RequestContext = Depends(require_permission("can_create_events")),
    access: AccessControl = Depends(get_access_control),
    repository: EventRepository = Depends(get_event_repository),
):
    payload = scope_payload(context, body.model_dump())
    record = await call_upstream(
        "events",
        _datastore_timeout(request),
        repository.create_event,
        org_id=payload["org_id"],
        title=payload["title"],
        description=payload["description"],
        starts_at=payload["starts_at"],
        created_by=context.profile_id,
    )
    logger.info("Event created", extra={**context.log_extra(), "event_id": record.id})
    return access.build_envelope(request, _event_response(record))


@router.get("", response_model=StandardResponse)
async def list_events(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    context: RequestContext = Depends(require_permission("can_view_events")),
    access: AccessControl = Depends(get_access_control),
    repository: EventRepository = Depends(get_event_repository),
):
    timeout = _datastore_timeout(request)
    records = await call_upstream(
        "events", timeout, repository.list_events, context.org_id, (page - 1) * limit, limit
    )
    total = await call_upstream("events", timeout, repository.count_events, context.org_id)

    items, pagination = paginate([_event_response(r) for r in records], page, limit, total)
    return access.build_envelope(request, items, pagination=pagination)


@router.delete("/{event_id}", response_model=StandardResponse)
async def delete_event(
    request: Request,
    event_id: str,
    context: RequestContext = Depends(require_permission("can_delete_events")),
    access: AccessControl = Depends(get_access_control),
    repository: EventRepository = Depends(get_event_repository),
):
    await access.assert_resource_ownership(context, "event", event_id)
    deleted = await call_upstream(
        "events", _datastore_timeout(request), repository.delete_event, context.org_id, event_id
    )
    if not deleted:
        raise NotFoundError()
    logger.info("Event deleted", extra={**context.log_extra(), "event_id": event_id})
    return access.build_envelope(request, {"id": event_id, "deleted": True})

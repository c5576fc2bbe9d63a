"""
Event repository.

Every query is scoped by org_id taken from the caller's RequestContext.
Id-addressed mutations must pass tenant isolation before reaching
delete_event().
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pto_access.models.event import Event


@dataclass(frozen=True)
class EventRecord:
    id: str
    org_id: str
    title: str
    description: Optional[str]
    starts_at: Optional[datetime]
    created_by: Optional[str]


def _event_record(event: Event) -> EventRecord:
    return EventRecord(
        id=event.id,
        org_id=event.org_id,
        title=event.title,
        description=event.description,
        starts_at=event.starts_at,
        created_by=event.created_by,
    )


class EventRepository:
    """Tenant-scoped event storage."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def create_event(
        self,
        org_id: str,
        title: str,
        description: Optional[str] = None,
        starts_at: Optional[datetime] = None,
        created_by: Optional[str] = None,
    ) -> EventRecord:
        with self._session_factory() as session:
            event = Event(
                org_id=org_id,
                title=title,
                description=description,
                starts_at=starts_at,
                created_by=created_by,
            )
            session.add(event)
            session.commit()
            return _event_record(event)

    def list_events(self, org_id: str, offset: int = 0, limit: int = 20) -> List[EventRecord]:
        with self._session_factory() as session:
            events = session.execute(
                select(Event)
                .where(Event.org_id == org_id)
                .order_by(Event.created_at.desc(), Event.id)
                .offset(offset)
                .limit(limit)
            ).scalars().all()
            return [_event_record(e) for e in events]

    def count_events(self, org_id: str) -> int:
        with self._session_factory() as session:
            return session.execute(
                select(func.count(Event.id)).where(Event.org_id == org_id)
            ).scalar_one()

    def delete_event(self, org_id: str, event_id: str) -> bool:
        """Delete an event. The org_id predicate keeps this safe even if isolation was skipped."""
        with self._session_factory() as session:
            event = session.execute(
                select(Event).where(Event.id == event_id, Event.org_id == org_id)
            ).scalar_one_or_none()
            if event is None:
                return False
            session.delete(event)
            session.commit()
            return True

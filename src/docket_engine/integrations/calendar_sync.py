"""
Calendar Sync Client
Pushes filing, deadline and action dates onto a matter calendar
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class CalendarEvent:
    id: str
    matter_id: str
    source_type: str  # filing, deadline, action
    source_id: str
    title: str
    event_date: date
    description: str = ""


class CalendarClient(ABC):
    """
    Interface for the calendar collaborator.

    Calls are fire-and-forget from the engine's point of view: callers log
    failures and carry on.
    """

    @abstractmethod
    def sync_event(self,
                   matter_id: str,
                   source_type: str,
                   source_id: str,
                   title: str,
                   event_date: date,
                   description: str = "") -> CalendarEvent:
        raise NotImplementedError

    def sync_filing(self, filing) -> Optional[CalendarEvent]:
        event_date = filing.filed_date or filing.served_date
        if not event_date:
            return None
        return self.sync_event(
            filing.matter_id, "filing", filing.id,
            f"{filing.doc_type}: {filing.original_file_name}", event_date,
        )

    def sync_deadline(self, deadline) -> Optional[CalendarEvent]:
        if not deadline.due_date:
            return None
        return self.sync_event(
            deadline.matter_id, "deadline", deadline.id,
            deadline.title, deadline.due_date,
            f"{deadline.rule_source or ''} ({deadline.criticality})".strip(),
        )

    def sync_action(self, action) -> Optional[CalendarEvent]:
        if not action.due_date:
            return None
        return self.sync_event(
            action.matter_id, "action", action.id,
            action.title, action.due_date, action.description or "",
        )


class InMemoryCalendar(CalendarClient):
    """
    Calendar kept in process memory; syncing the same source twice updates
    its event instead of adding a second one
    """

    def __init__(self):
        self.events: Dict[str, CalendarEvent] = {}

    def sync_event(self,
                   matter_id: str,
                   source_type: str,
                   source_id: str,
                   title: str,
                   event_date: date,
                   description: str = "") -> CalendarEvent:
        existing = self.get_event(source_type, source_id)
        if existing:
            existing.title = title
            existing.event_date = event_date
            existing.description = description
            return existing

        event = CalendarEvent(
            id=str(uuid.uuid4()),
            matter_id=matter_id,
            source_type=source_type,
            source_id=source_id,
            title=title,
            event_date=event_date,
            description=description,
        )
        self.events[event.id] = event
        logger.debug(f"Calendar event {event.id} created for {source_type} {source_id}")
        return event

    def get_event(self, source_type: str, source_id: str) -> Optional[CalendarEvent]:
        for event in self.events.values():
            if event.source_type == source_type and event.source_id == source_id:
                return event
        return None

    def events_for_matter(self, matter_id: str) -> List[CalendarEvent]:
        return [e for e in self.events.values() if e.matter_id == matter_id]

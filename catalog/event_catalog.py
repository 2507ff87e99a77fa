"""Manual event management on top of the event store."""
import logging
from datetime import datetime
from typing import List, Optional

from processor.errors import EventNotFound, InvalidEventTime
from processor.event_processor import EventProcessor
from processor.models import Event, Person
from processor.validation import validate_identifier, validate_name

logger = logging.getLogger(__name__)


class EventCatalog:
    """Create, read, update and delete events outside of the feed sync."""

    SORT_FIELDS = ('event_time', 'name', 'location')

    def __init__(self, event_store, person_store=None):
        self.event_store = event_store
        self.person_store = person_store
        self._time_parser = EventProcessor()

    def list_events(
        self,
        include_private: bool = False,
        sort_by: str = 'event_time',
        ascending: bool = True
    ) -> List[Event]:
        """
        List events, hiding private ones unless include_private is set.

        Args:
            include_private: Whether private events are returned
            sort_by: One of event_time, name, location
            ascending: Sort direction

        Returns:
            Sorted list of Event objects
        """
        if sort_by not in self.SORT_FIELDS:
            sort_by = 'event_time'

        events = self.event_store.list_events()
        if not include_private:
            events = [event for event in events if not event.is_private]

        return sorted(events, key=lambda event: getattr(event, sort_by), reverse=not ascending)

    def get_event(self, event_id) -> Event:
        validate_identifier(event_id, 'event')
        event = self.event_store.find_by_id(event_id)
        if not event:
            raise EventNotFound()
        return event

    def create_event(
        self,
        name,
        location: str,
        event_time,
        is_private: bool = False,
        external_link: Optional[str] = None
    ) -> Event:
        event = Event(
            name=validate_name(name),
            location=(location or '').strip(),
            event_time=self._parse_time(event_time),
            is_private=bool(is_private),
            external_link=external_link or None
        )
        created = self.event_store.upsert(event)
        logger.info(f"Created event {created.event_id}")
        return created

    def update_event(
        self,
        event_id,
        name,
        location: str,
        event_time,
        is_private: bool = False
    ) -> Event:
        """Replace the editable fields of an event. The external link is kept."""
        current = self.get_event(event_id)
        updated = Event(
            event_id=current.event_id,
            name=validate_name(name),
            location=(location or '').strip(),
            event_time=self._parse_time(event_time),
            is_private=bool(is_private),
            external_link=current.external_link,
            attendees=current.attendees
        )
        return self.event_store.upsert(updated)

    def delete_event(self, event_id) -> Event:
        validate_identifier(event_id, 'event')
        deleted = self.event_store.delete(event_id)
        if not deleted:
            raise EventNotFound()
        logger.info(f"Deleted event {event_id}")
        return deleted

    def get_attendees(self, event_id) -> List[Person]:
        """Resolve an event's attendee ids to people, skipping dangling ids."""
        event = self.get_event(event_id)
        if self.person_store is None:
            return []

        people = []
        for person_id in sorted(event.attendees):
            person = self.person_store.find_by_id(person_id)
            if person:
                people.append(person)
            else:
                logger.warning(f"Event {event_id} lists missing person {person_id}")
        return people

    def _parse_time(self, value) -> datetime:
        parsed = self._time_parser.parse_time(value)
        if not parsed:
            raise InvalidEventTime()
        return parsed

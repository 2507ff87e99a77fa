"""Check-in / check-out between people and events."""
import logging
from dataclasses import replace
from typing import Optional

from processor.errors import (
    AlreadyCheckedIn,
    DuplicateEmail,
    EmailNameMismatch,
    EventNotFound,
    NotCheckedIn,
    PersonNotFound,
)
from processor.models import Event, Person
from processor.validation import validate_email, validate_identifier, validate_name

logger = logging.getLogger(__name__)


class AttendanceEngine:
    """
    Keeps Event.attendees and Person.events symmetric.

    All validation happens before the single two-sided write issued through
    the attendance store, so a rejected call has no side effects.
    """

    MAX_CREATE_ATTEMPTS = 2

    def __init__(self, event_store, person_store, attendance_store):
        self.event_store = event_store
        self.person_store = person_store
        self.attendance_store = attendance_store

    def check_in(
        self,
        event_id,
        name=None,
        email=None,
        person_id: Optional[str] = None
    ) -> Event:
        """
        Check a person into an event.

        The person is taken from person_id when given; otherwise it is
        resolved by email, and created when no one holds the email yet.

        Returns:
            The event as written: the state read before the write with this
            person added to its attendees

        Raises:
            InvalidIdentifier, EventNotFound, PersonNotFound, InvalidName,
            InvalidEmail, EmailNameMismatch, AlreadyCheckedIn, StoreWriteError
        """
        event = self._get_event(event_id)

        if person_id:
            person = self._get_person(person_id)
        else:
            person = self.resolve_person(name, email)

        if person.person_id in event.attendees:
            raise AlreadyCheckedIn()

        self.attendance_store.add(event.event_id, person.person_id)
        logger.info(f"Person {person.person_id} checked in to event {event.event_id}")
        return replace(event, attendees=event.attendees | {person.person_id})

    def check_out(self, event_id, person_id) -> Event:
        """
        Check a person out of an event.

        Raises:
            InvalidIdentifier, EventNotFound, PersonNotFound, NotCheckedIn,
            StoreWriteError
        """
        event = self._get_event(event_id)
        person = self._get_person(person_id)

        if person.person_id not in event.attendees:
            raise NotCheckedIn()

        self.attendance_store.remove(event.event_id, person.person_id)
        logger.info(f"Person {person.person_id} checked out of event {event.event_id}")
        return replace(event, attendees=event.attendees - {person.person_id})

    def resolve_person(self, name, email) -> Person:
        """
        Find a person by email, or create one.

        A uniqueness conflict on create means someone else registered the
        email in between, so the lookup is repeated.

        Raises:
            InvalidName: If name is blank
            InvalidEmail: If email is malformed
            EmailNameMismatch: If the email belongs to someone with another name
        """
        name = validate_name(name)
        email = validate_email(email)

        for _ in range(self.MAX_CREATE_ATTEMPTS):
            person = self.person_store.find_by_email(email)
            if person:
                if person.name != name:
                    logger.warning(f"Name mismatch for email of person {person.person_id}")
                    raise EmailNameMismatch()
                return person

            try:
                return self.person_store.create(Person(name=name, email=email))
            except DuplicateEmail:
                logger.info("Email claimed concurrently, retrying lookup")

        raise DuplicateEmail()

    def _get_event(self, event_id) -> Event:
        validate_identifier(event_id, 'event')
        event = self.event_store.find_by_id(event_id)
        if not event:
            raise EventNotFound()
        return event

    def _get_person(self, person_id) -> Person:
        validate_identifier(person_id, 'member')
        person = self.person_store.find_by_id(person_id)
        if not person:
            raise PersonNotFound()
        return person

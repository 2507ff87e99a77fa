"""Tests for manual event management."""
from datetime import datetime, timezone

import pytest

from catalog.event_catalog import EventCatalog
from processor.errors import (
    DuplicateExternalLink,
    EventNotFound,
    InvalidEventTime,
    InvalidIdentifier,
    InvalidName,
)
from processor.models import Event, Person
from processor.validation import new_identifier


@pytest.fixture
def catalog(event_store, person_store):
    return EventCatalog(event_store, person_store)


@pytest.fixture
def public_and_private(event_store):
    public = event_store.upsert(Event(
        name='Public Talk',
        location='Lawson',
        event_time=datetime(2024, 2, 1, tzinfo=timezone.utc)
    ))
    private = event_store.upsert(Event(
        name='Board Meeting',
        location='Lawson',
        event_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
        is_private=True
    ))
    return public, private


class TestEventCatalog:
    """Test cases for manual event management."""

    def test_list_events_hides_private(self, catalog, public_and_private):
        public, _ = public_and_private

        events = catalog.list_events()

        assert [event.event_id for event in events] == [public.event_id]

    def test_list_events_with_private_sorted(self, catalog, public_and_private):
        public, private = public_and_private

        ascending = catalog.list_events(include_private=True)
        descending = catalog.list_events(include_private=True, ascending=False)

        assert [event.event_id for event in ascending] == [private.event_id, public.event_id]
        assert [event.event_id for event in descending] == [public.event_id, private.event_id]

    def test_list_events_unknown_sort_field_falls_back(self, catalog, public_and_private):
        events = catalog.list_events(include_private=True, sort_by='attendees')

        assert [event.name for event in events] == ['Board Meeting', 'Public Talk']

    def test_get_event_invalid_id(self, catalog):
        with pytest.raises(InvalidIdentifier) as exc_info:
            catalog.get_event('invalidID')
        assert str(exc_info.value) == 'Invalid event ID'

    def test_get_event_missing(self, catalog):
        with pytest.raises(EventNotFound):
            catalog.get_event(new_identifier())

    def test_create_event(self, catalog, event_store):
        created = catalog.create_event('  Hack Night ', 'Lawson B160', '2024-03-01T23:00:00Z')

        stored = event_store.find_by_id(created.event_id)
        assert stored.name == 'Hack Night'
        assert stored.event_time == datetime(2024, 3, 1, 23, 0, tzinfo=timezone.utc)
        assert stored.external_link is None
        assert stored.is_private is False

    def test_create_event_requires_name_and_time(self, catalog):
        with pytest.raises(InvalidName):
            catalog.create_event('', 'Lawson', '2024-03-01T23:00:00Z')
        with pytest.raises(InvalidEventTime):
            catalog.create_event('Hack Night', 'Lawson', 'tomorrow')

    def test_update_event(self, catalog, stored_event):
        updated = catalog.update_event(
            stored_event.event_id, 'Hack Night 2', 'WALC', '2024-03-08T23:00:00Z', is_private=True
        )

        assert updated.event_id == stored_event.event_id
        assert updated.name == 'Hack Night 2'
        assert updated.location == 'WALC'
        assert updated.is_private is True

    def test_update_event_invalid_and_missing(self, catalog):
        with pytest.raises(InvalidIdentifier):
            catalog.update_event('Invalid ID', 'Name', 'Place', '2024-03-08T23:00:00Z')
        with pytest.raises(EventNotFound):
            catalog.update_event(new_identifier(), 'Name', 'Place', '2024-03-08T23:00:00Z')

    def test_delete_event(self, catalog, event_store, stored_event):
        deleted = catalog.delete_event(stored_event.event_id)

        assert deleted.name == stored_event.name
        assert event_store.find_by_id(stored_event.event_id) is None

    def test_delete_event_invalid_and_missing(self, catalog):
        with pytest.raises(InvalidIdentifier):
            catalog.delete_event('Invalid ID')
        with pytest.raises(EventNotFound):
            catalog.delete_event(new_identifier())

    def test_get_attendees(self, catalog, person_store, attendance_store, stored_event):
        ada = person_store.create(Person(name='Ada Lovelace', email='ada@example.com'))
        attendance_store.add(stored_event.event_id, ada.person_id)

        attendees = catalog.get_attendees(stored_event.event_id)

        assert [person.person_id for person in attendees] == [ada.person_id]

    def test_create_event_with_taken_external_link(self, catalog, event_store):
        link = 'https://www.facebook.com/events/100/'
        first = catalog.create_event('A', 'Lawson', '2024-03-01T23:00:00Z', external_link=link)

        with pytest.raises(DuplicateExternalLink):
            catalog.create_event('B', 'Lawson', '2024-03-02T23:00:00Z', external_link=link)

        linked = [event for event in catalog.list_events() if event.external_link == link]
        assert [event.event_id for event in linked] == [first.event_id]

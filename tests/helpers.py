"""Builders shared by the test modules."""
from datetime import datetime, timezone

from processor.event_processor import EventProcessor

WINDOW_SINCE = datetime(2024, 1, 1, tzinfo=timezone.utc)
WINDOW_UNTIL = datetime(2024, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


def feed_events(*raw_events):
    """Normalize Graph API style dictionaries into ExternalEvent objects."""
    return EventProcessor().process_events(list(raw_events))


def raw_feed_event(event_id, name='Demo Day', place='Purdue', start_time='2024-05-01T18:00Z'):
    return {
        'id': event_id,
        'name': name,
        'place': {'name': place},
        'start_time': start_time
    }

"""Unit tests for EventProcessor."""
from datetime import datetime, timezone

from processor.event_processor import EventProcessor, build_external_link


class TestEventProcessor:
    """Test cases for EventProcessor class."""

    def test_process_events_valid_event(self):
        """Test processing a valid Graph API event."""
        processor = EventProcessor()

        raw_events = [
            {
                'id': '100',
                'name': 'Demo Day',
                'place': {'name': 'Purdue'},
                'start_time': '2024-05-01T18:00:00-0400'
            }
        ]

        processed = processor.process_events(raw_events)

        assert len(processed) == 1
        event = processed[0]

        assert event.external_id == '100'
        assert event.name == 'Demo Day'
        assert event.place == 'Purdue'
        assert event.start_time == datetime(2024, 5, 1, 22, 0, tzinfo=timezone.utc)
        assert event.external_link == 'https://www.facebook.com/events/100/'

    def test_process_events_missing_place(self):
        """Test that events without a place get an empty location."""
        processor = EventProcessor()

        processed = processor.process_events([
            {'id': '7', 'name': 'Online Talk', 'start_time': '2024-05-01T18:00Z'}
        ])

        assert len(processed) == 1
        assert processed[0].place == ''

    def test_process_events_skips_invalid_events(self):
        """Test that events without id or with a bad start time are skipped."""
        processor = EventProcessor()

        raw_events = [
            {'name': 'No Id', 'start_time': '2024-05-01T18:00Z'},
            {'id': '', 'name': 'Blank Id', 'start_time': '2024-05-01T18:00Z'},
            {'id': '2', 'name': 'Bad Time', 'start_time': 'next tuesday'},
            {'id': '3', 'name': 'No Time'},
            {'id': '4', 'name': 'Valid', 'start_time': '2024-05-01T18:00Z'},
        ]

        processed = processor.process_events(raw_events)

        assert [event.external_id for event in processed] == ['4']

    def test_process_events_keeps_first_duplicate(self):
        """Test that a repeated id keeps the first occurrence."""
        processor = EventProcessor()

        processed = processor.process_events([
            {'id': '5', 'name': 'First', 'start_time': '2024-05-01T18:00Z'},
            {'id': '5', 'name': 'Second', 'start_time': '2024-05-02T18:00Z'},
        ])

        assert len(processed) == 1
        assert processed[0].name == 'First'

    def test_process_events_preserves_feed_order(self):
        """Test that output follows the feed order."""
        processor = EventProcessor()

        processed = processor.process_events([
            {'id': str(i), 'name': f'Event {i}', 'start_time': '2024-05-01T18:00Z'}
            for i in (3, 1, 2)
        ])

        assert [event.external_id for event in processed] == ['3', '1', '2']

    def test_process_events_truncates_long_name(self):
        """Test that overlong names are truncated."""
        processor = EventProcessor()

        processed = processor.process_events([
            {'id': '9', 'name': '  ' + 'x' * 300, 'start_time': '2024-05-01T18:00Z'}
        ])

        assert len(processed[0].name) == EventProcessor.MAX_NAME_LENGTH

    def test_parse_time_formats(self):
        """Test the accepted timestamp formats."""
        processor = EventProcessor()
        expected = datetime(2024, 5, 1, 18, 0, tzinfo=timezone.utc)

        assert processor.parse_time('2024-05-01T18:00Z') == expected
        assert processor.parse_time('2024-05-01T18:00:00Z') == expected
        assert processor.parse_time('2024-05-01T18:00:00+0000') == expected
        assert processor.parse_time('2024-05-01T20:00:00+02:00') == expected
        assert processor.parse_time(datetime(2024, 5, 1, 18, 0)) == expected

    def test_parse_time_invalid(self):
        """Test that unparseable timestamps return None."""
        processor = EventProcessor()

        assert processor.parse_time('2024-05-01') is None
        assert processor.parse_time('') is None
        assert processor.parse_time(None) is None

    def test_build_external_link(self):
        """Test external link derivation from a feed id."""
        assert build_external_link('100') == 'https://www.facebook.com/events/100/'

"""Event processor for validating and normalizing feed event data."""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from processor.models import ExternalEvent

logger = logging.getLogger(__name__)

EXTERNAL_LINK_TEMPLATE = "https://www.facebook.com/events/{}/"


def build_external_link(external_id: str) -> str:
    """Link that correlates a stored event with its feed event."""
    return EXTERNAL_LINK_TEMPLATE.format(external_id)


class EventProcessor:
    """Processor for validating and normalizing Graph API event data."""

    MAX_NAME_LENGTH = 200
    MAX_PLACE_LENGTH = 200

    # Graph API emits "2024-05-01T18:00:00-0400"; tests and older feeds
    # also use "Z" and minute precision.
    TIME_FORMATS = [
        '%Y-%m-%dT%H:%M:%S%z',
        '%Y-%m-%dT%H:%M%z',
        '%Y-%m-%dT%H:%M:%S.%f%z',
    ]

    def process_events(self, raw_events: List[dict]) -> List[ExternalEvent]:
        """
        Process and validate raw feed events.

        Events without an id or a parseable start time are skipped. When the
        same id appears more than once the first occurrence wins.

        Args:
            raw_events: List of event dictionaries from the feed client

        Returns:
            List of validated ExternalEvent objects, in feed order
        """
        processed_events = []
        seen_ids = set()

        for raw_event in raw_events:
            try:
                processed_event = self._process_single_event(raw_event)
            except (AttributeError, TypeError) as e:
                logger.warning(f"Failed to process feed event {raw_event!r}: {e}")
                continue

            if not processed_event:
                continue

            if processed_event.external_id in seen_ids:
                logger.warning(
                    f"Duplicate feed event id {processed_event.external_id}, "
                    f"keeping first occurrence"
                )
                continue

            seen_ids.add(processed_event.external_id)
            processed_events.append(processed_event)

        logger.info(
            f"Processed {len(processed_events)} valid events out of "
            f"{len(raw_events)} total events"
        )
        return processed_events

    def _process_single_event(self, raw_event: dict) -> Optional[ExternalEvent]:
        external_id = str(raw_event.get('id') or '').strip()
        if not external_id:
            logger.warning("Feed event missing required field: id")
            return None

        start_time = self.parse_time(raw_event.get('start_time'))
        if not start_time:
            logger.warning(
                f"Invalid start time for feed event {external_id}: "
                f"{raw_event.get('start_time')}"
            )
            return None

        name = (raw_event.get('name') or '').strip()[:self.MAX_NAME_LENGTH]
        place = raw_event.get('place') or {}
        place_name = (place.get('name') or '').strip()[:self.MAX_PLACE_LENGTH]

        return ExternalEvent(
            external_id=external_id,
            name=name,
            place=place_name,
            start_time=start_time,
            external_link=build_external_link(external_id)
        )

    def parse_time(self, value) -> Optional[datetime]:
        """
        Parse a feed timestamp into an aware UTC datetime.

        Args:
            value: Timestamp string, or an already parsed datetime

        Returns:
            UTC datetime or None if parsing fails
        """
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)

        if not isinstance(value, str) or not value.strip():
            return None

        for fmt in self.TIME_FORMATS:
            try:
                parsed = datetime.strptime(value.strip(), fmt)
                return parsed.astimezone(timezone.utc)
            except ValueError:
                continue

        return None

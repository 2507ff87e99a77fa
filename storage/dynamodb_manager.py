"""Shared DynamoDB plumbing for the event, person and attendance stores."""
import logging
from datetime import datetime, timezone
from typing import List, Optional

import boto3
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from processor.models import Event, Person

logger = logging.getLogger(__name__)

EVENT_TIME_FORMAT = '%Y-%m-%dT%H:%M:%SZ'


def format_event_time(value: datetime) -> str:
    """Serialize a datetime so that string order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(EVENT_TIME_FORMAT)


def parse_event_time(value: str) -> datetime:
    return datetime.strptime(value, EVENT_TIME_FORMAT).replace(tzinfo=timezone.utc)


def cancellation_codes(error: ClientError) -> List[str]:
    """Per-item reason codes of a cancelled transaction, in request order."""
    reasons = error.response.get('CancellationReasons') or []
    return [reason.get('Code', 'None') for reason in reasons]


def is_conflict(error: ClientError) -> bool:
    """True when a write lost a condition check against a concurrent change."""
    code = error.response.get('Error', {}).get('Code')
    return code in ('TransactionCanceledException', 'ConditionalCheckFailedException')


class DynamoDBManager:
    """Base class holding the DynamoDB resource, client and item conversions."""

    TRANSACTION_LIMIT = 100  # DynamoDB TransactWriteItems limit

    def __init__(self, region_name: Optional[str] = None):
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        # Transactions go through the low-level client with typed values
        self.client = boto3.client('dynamodb', region_name=region_name)
        self.serializer = TypeSerializer()

    def _serialize(self, values: dict) -> dict:
        return {key: self.serializer.serialize(value) for key, value in values.items()}

    def _item_to_event(self, item: dict) -> Optional[Event]:
        """
        Convert DynamoDB item to Event object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            Event object or None if conversion fails
        """
        try:
            return Event(
                event_id=item['event_id'],
                name=item.get('name', ''),
                location=item.get('location', ''),
                event_time=parse_event_time(item['event_time']),
                external_link=item.get('external_link') or None,
                is_private=bool(item.get('is_private', False)),
                attendees=set(item.get('attendees') or set())
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to convert item to Event: {e}")
            return None

    def _event_to_item(self, event: Event) -> dict:
        item = {
            'event_id': event.event_id,
            'name': event.name,
            'location': event.location,
            'event_time': format_event_time(event.event_time),
            'is_private': bool(event.is_private)
        }

        # GSI key and string sets cannot be empty
        if event.external_link:
            item['external_link'] = event.external_link
        if event.attendees:
            item['attendees'] = set(event.attendees)

        return item

    def _item_to_person(self, item: dict) -> Optional[Person]:
        try:
            return Person(
                person_id=item['person_id'],
                name=item['name'],
                email=item['email'],
                events=set(item.get('events') or set())
            )
        except KeyError as e:
            logger.warning(f"Failed to convert item to Person: {e}")
            return None

    def _person_to_item(self, person: Person) -> dict:
        item = {
            'person_id': person.person_id,
            'name': person.name,
            'email': person.email
        }
        if person.events:
            item['events'] = set(person.events)
        return item

"""DynamoDB-backed event store."""
import logging
from datetime import datetime
from typing import List, Optional

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from processor.errors import DuplicateExternalLink, StoreWriteError
from processor.models import Event
from processor.validation import new_identifier
from storage.dynamodb_manager import (
    DynamoDBManager,
    cancellation_codes,
    format_event_time,
    is_conflict,
)

logger = logging.getLogger(__name__)

LINK_CLAIM_PREFIX = 'link#'


def link_claim_key(external_link: str) -> str:
    return f"{LINK_CLAIM_PREFIX}{external_link}"


class DynamoDBEventStore(DynamoDBManager):
    """
    Keyed collection of Event records.

    Like emails in the person store, external links are held unique by a
    claim item keyed by the link, written and released in the same
    transaction as the event that owns it.
    """

    EXTERNAL_LINK_INDEX = 'external-link-index'
    MAX_DELETE_ATTEMPTS = 3

    def __init__(
        self,
        table_name: str,
        people_table_name: Optional[str] = None,
        region_name: Optional[str] = None
    ):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the events table
            people_table_name: Name of the people table; needed to detach
                attendees when an event is deleted
            region_name: AWS region, defaults to the environment's
        """
        super().__init__(region_name=region_name)
        self.table_name = table_name
        self.people_table_name = people_table_name
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBEventStore for table: {table_name}")

    def find_by_id(self, event_id: str) -> Optional[Event]:
        if event_id.startswith(LINK_CLAIM_PREFIX):
            return None
        response = self.table.get_item(Key={'event_id': event_id}, ConsistentRead=True)
        item = response.get('Item')
        return self._item_to_event(item) if item else None

    def find_by_external_link(self, external_link: str) -> Optional[Event]:
        """
        Look up the event correlated with a feed event.

        The link claim is read first. Events without a claim are found
        through the index, which is eventually consistent, so the match is
        re-read from the table before being returned.
        """
        claim = self.table.get_item(
            Key={'event_id': link_claim_key(external_link)}, ConsistentRead=True
        ).get('Item')
        if claim:
            event = self.find_by_id(claim['owner_id'])
            if event:
                return event
            logger.warning(
                f"Link claim for {external_link} points at missing event {claim['owner_id']}"
            )

        response = self.table.query(
            IndexName=self.EXTERNAL_LINK_INDEX,
            KeyConditionExpression=Key('external_link').eq(external_link)
        )
        items = response.get('Items', [])
        if len(items) > 1:
            logger.warning(f"{len(items)} events share external link {external_link}")

        for item in items:
            event = self.find_by_id(item['event_id'])
            if event:
                return event
        return None

    def find_in_window(self, since: datetime, until: datetime) -> List[Event]:
        """
        Return every event whose event_time falls within [since, until].

        Args:
            since: Window start (inclusive)
            until: Window end (inclusive)

        Returns:
            List of Event objects
        """
        return self._scan(
            Attr('event_time').between(format_event_time(since), format_event_time(until))
        )

    def list_events(self) -> List[Event]:
        # Link claims carry no event_time
        return self._scan(Attr('event_time').exists())

    def _scan(self, filter_expression=None) -> List[Event]:
        kwargs = {'ConsistentRead': True}
        if filter_expression is not None:
            kwargs['FilterExpression'] = filter_expression

        response = self.table.scan(**kwargs)
        items = response.get('Items', [])

        # Handle pagination
        while 'LastEvaluatedKey' in response:
            response = self.table.scan(
                ExclusiveStartKey=response['LastEvaluatedKey'], **kwargs
            )
            items.extend(response.get('Items', []))

        events = [self._item_to_event(item) for item in items]
        return [event for event in events if event]

    def upsert(self, event: Event) -> Event:
        """
        Create an event, or refresh the descriptive fields of an existing one.

        A new event (no event_id) gets a fresh identifier. For an existing
        event only name, location, event_time, is_private and external_link
        are written; attendees are owned by the attendance store.

        Raises:
            DuplicateExternalLink: If another event holds the external link
            StoreWriteError: If the write fails or the event no longer exists
        """
        if not event.event_id:
            return self._create(event)

        current = self.find_by_id(event.event_id)
        if not current:
            raise StoreWriteError("Event does not exist", event.event_id)
        if current.external_link != (event.external_link or None):
            return self._relink(current, event)

        expression, names, values = self._update_parts(event)
        # The link must not have moved since it was read
        if event.external_link:
            condition = 'attribute_exists(event_id) AND #external_link = :external_link'
        else:
            condition = 'attribute_exists(event_id) AND attribute_not_exists(#external_link)'

        try:
            response = self.table.update_item(
                Key={'event_id': event.event_id},
                UpdateExpression=expression,
                ConditionExpression=condition,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues='ALL_NEW'
            )
        except ClientError as e:
            logger.error(f"Error updating event {event.event_id}: {e}")
            raise StoreWriteError(f"Failed to update event: {e}", event.event_id) from e

        return self._item_to_event(response['Attributes'])

    def _update_parts(self, event: Event):
        values = {
            ':name': event.name,
            ':location': event.location,
            ':event_time': format_event_time(event.event_time),
            ':is_private': bool(event.is_private)
        }
        names = {
            '#name': 'name',
            '#location': 'location',
            '#event_time': 'event_time',
            '#is_private': 'is_private',
            '#external_link': 'external_link'
        }
        expression = (
            'SET #name = :name, #location = :location, '
            '#event_time = :event_time, #is_private = :is_private'
        )
        if event.external_link:
            expression += ', #external_link = :external_link'
            values[':external_link'] = event.external_link
        else:
            expression += ' REMOVE #external_link'
        return expression, names, values

    def _create(self, event: Event) -> Event:
        created = Event(
            event_id=new_identifier(),
            name=event.name,
            location=event.location,
            event_time=event.event_time,
            external_link=event.external_link or None,
            is_private=bool(event.is_private),
            attendees=set()
        )
        actions = [{
            'Put': {
                'TableName': self.table_name,
                'Item': self._serialize(self._event_to_item(created)),
                'ConditionExpression': 'attribute_not_exists(event_id)'
            }
        }]
        if created.external_link:
            actions.append(self._claim_link_action(created))

        try:
            self.client.transact_write_items(TransactItems=actions)
        except ClientError as e:
            if created.external_link and self._link_taken(e, created.external_link):
                raise DuplicateExternalLink() from e
            logger.error(f"Error creating event {event.external_link or event.name}: {e}")
            raise StoreWriteError(
                f"Failed to create event: {e}", event.external_link or event.name
            ) from e

        return created

    def _relink(self, current: Event, event: Event) -> Event:
        """Update an event whose external link changes, moving the link claim."""
        expression, names, values = self._update_parts(event)
        if current.external_link:
            condition = 'attribute_exists(event_id) AND #external_link = :old_link'
            values[':old_link'] = current.external_link
        else:
            condition = 'attribute_exists(event_id) AND attribute_not_exists(#external_link)'

        actions = [{
            'Update': {
                'TableName': self.table_name,
                'Key': self._serialize({'event_id': event.event_id}),
                'UpdateExpression': expression,
                'ConditionExpression': condition,
                'ExpressionAttributeNames': names,
                'ExpressionAttributeValues': self._serialize(values)
            }
        }]
        if current.external_link:
            actions.append(self._release_link_action(current))
        if event.external_link:
            actions.append(self._claim_link_action(event))

        try:
            self.client.transact_write_items(TransactItems=actions)
        except ClientError as e:
            if event.external_link and self._link_taken(e, event.external_link):
                raise DuplicateExternalLink() from e
            logger.error(f"Error relinking event {event.event_id}: {e}")
            raise StoreWriteError(f"Failed to update event: {e}", event.event_id) from e

        logger.info(
            f"Moved event {event.event_id} from link {current.external_link} "
            f"to {event.external_link}"
        )
        return self.find_by_id(event.event_id)

    def delete(self, event_id: str) -> Optional[Event]:
        """
        Delete an event and remove it from its attendees' event sets.

        Attendees are detached in transactions that shrink both sides
        together, so every committed step leaves the relationship symmetric.
        The record itself is only deleted once its attendee set is empty; a
        check-in that lands in between makes the delete start over.

        Returns:
            The deleted Event, or None if it did not exist

        Raises:
            StoreWriteError: If the delete fails or keeps racing other writes
        """
        for attempt in range(1, self.MAX_DELETE_ATTEMPTS + 1):
            event = self.find_by_id(event_id)
            if not event:
                return None

            try:
                if event.attendees and self.people_table_name:
                    self._detach_attendees(event)
                self._delete_record(event)
                return event
            except ClientError as e:
                if not is_conflict(e):
                    logger.error(
                        f"Error deleting event {event_id} "
                        f"(reasons: {cancellation_codes(e)}): {e}"
                    )
                    raise StoreWriteError(f"Failed to delete event: {e}", event_id) from e
                logger.warning(
                    f"Event {event_id} changed while deleting (attempt {attempt}), "
                    f"reasons: {cancellation_codes(e)}"
                )

        raise StoreWriteError(
            f"Event {event_id} kept changing during delete after "
            f"{self.MAX_DELETE_ATTEMPTS} attempts",
            event_id
        )

    def _detach_attendees(self, event: Event) -> None:
        attendees = sorted(event.attendees)
        # One slot per transaction is taken by the event side
        chunk_size = self.TRANSACTION_LIMIT - 1

        for i in range(0, len(attendees), chunk_size):
            chunk = attendees[i:i + chunk_size]
            actions = [self._detach_action(event.event_id, person_id) for person_id in chunk]
            actions.append({
                'Update': {
                    'TableName': self.table_name,
                    'Key': self._serialize({'event_id': event.event_id}),
                    'UpdateExpression': 'DELETE #attendees :people',
                    'ConditionExpression': 'attribute_exists(event_id)',
                    'ExpressionAttributeNames': {'#attendees': 'attendees'},
                    'ExpressionAttributeValues': self._serialize({':people': set(chunk)})
                }
            })
            self.client.transact_write_items(TransactItems=actions)
            logger.debug(f"Detached {len(chunk)} attendee(s) from event {event.event_id}")

    def _delete_record(self, event: Event) -> None:
        delete = {
            'TableName': self.table_name,
            'Key': self._serialize({'event_id': event.event_id}),
            'ConditionExpression': 'attribute_exists(event_id)'
        }
        if self.people_table_name:
            delete['ConditionExpression'] += ' AND attribute_not_exists(#attendees)'
            delete['ExpressionAttributeNames'] = {'#attendees': 'attendees'}
        elif event.attendees:
            logger.warning(
                f"Deleting event {event.event_id} without detaching "
                f"{len(event.attendees)} attendee(s): no people table configured"
            )

        actions = [{'Delete': delete}]
        if event.external_link:
            actions.append(self._release_link_action(event))
        self.client.transact_write_items(TransactItems=actions)

    def _detach_action(self, event_id: str, person_id: str) -> dict:
        return {
            'Update': {
                'TableName': self.people_table_name,
                'Key': self._serialize({'person_id': person_id}),
                'UpdateExpression': 'DELETE #events :event',
                'ConditionExpression': 'attribute_exists(person_id)',
                'ExpressionAttributeNames': {'#events': 'events'},
                'ExpressionAttributeValues': self._serialize({':event': {event_id}})
            }
        }

    def _claim_link_action(self, event: Event) -> dict:
        return {
            'Put': {
                'TableName': self.table_name,
                'Item': self._serialize({
                    'event_id': link_claim_key(event.external_link),
                    'owner_id': event.event_id
                }),
                'ConditionExpression': 'attribute_not_exists(event_id)'
            }
        }

    def _release_link_action(self, event: Event) -> dict:
        # Events written before link claims existed have no claim to release
        return {
            'Delete': {
                'TableName': self.table_name,
                'Key': self._serialize({'event_id': link_claim_key(event.external_link)}),
                'ConditionExpression': 'attribute_not_exists(event_id) OR owner_id = :owner',
                'ExpressionAttributeValues': self._serialize({':owner': event.event_id})
            }
        }

    def _link_taken(self, error: ClientError, external_link: str) -> bool:
        if error.response.get('Error', {}).get('Code') != 'TransactionCanceledException':
            return False
        logger.info(f"Transaction cancelled (reasons: {cancellation_codes(error)})")
        claim = self.table.get_item(
            Key={'event_id': link_claim_key(external_link)}, ConsistentRead=True
        ).get('Item')
        return claim is not None

"""Two-sided attendance writes across the events and people tables."""
import logging
from typing import Optional

from botocore.exceptions import ClientError

from processor.errors import (
    AlreadyCheckedIn,
    EventNotFound,
    NotCheckedIn,
    PersonNotFound,
    StoreWriteError,
)
from storage.dynamodb_manager import DynamoDBManager, cancellation_codes

logger = logging.getLogger(__name__)


class DynamoDBAttendanceStore(DynamoDBManager):
    """
    Owns Event.attendees and Person.events.

    Both sets are only ever changed here, together, in a single
    TransactWriteItems call, so a failure leaves neither side written.
    """

    def __init__(
        self,
        events_table_name: str,
        people_table_name: str,
        region_name: Optional[str] = None
    ):
        super().__init__(region_name=region_name)
        self.events_table_name = events_table_name
        self.people_table_name = people_table_name
        self.events_table = self.dynamodb.Table(events_table_name)
        self.people_table = self.dynamodb.Table(people_table_name)

    def add(self, event_id: str, person_id: str) -> None:
        """
        Record that a person attends an event.

        Raises:
            AlreadyCheckedIn: If the person is already an attendee
            EventNotFound / PersonNotFound: If either side vanished
            StoreWriteError: If the transaction fails for another reason
        """
        self._transact(
            event_id,
            person_id,
            event_update=(
                'ADD #attendees :person',
                'attribute_exists(event_id) AND NOT contains(#attendees, :person_id)'
            ),
            person_update='ADD #events :event',
            adding=True
        )
        logger.info(f"Checked in person {person_id} to event {event_id}")

    def remove(self, event_id: str, person_id: str) -> None:
        """
        Remove a person from an event's attendees.

        Raises:
            NotCheckedIn: If the person is not an attendee
            EventNotFound / PersonNotFound: If either side vanished
            StoreWriteError: If the transaction fails for another reason
        """
        self._transact(
            event_id,
            person_id,
            event_update=(
                'DELETE #attendees :person',
                'attribute_exists(event_id) AND contains(#attendees, :person_id)'
            ),
            person_update='DELETE #events :event',
            adding=False
        )
        logger.info(f"Checked out person {person_id} from event {event_id}")

    def _transact(self, event_id, person_id, event_update, person_update, adding):
        event_expression, event_condition = event_update
        actions = [
            {
                'Update': {
                    'TableName': self.events_table_name,
                    'Key': self._serialize({'event_id': event_id}),
                    'UpdateExpression': event_expression,
                    'ConditionExpression': event_condition,
                    'ExpressionAttributeNames': {'#attendees': 'attendees'},
                    'ExpressionAttributeValues': self._serialize({
                        ':person': {person_id},
                        ':person_id': person_id
                    })
                }
            },
            {
                'Update': {
                    'TableName': self.people_table_name,
                    'Key': self._serialize({'person_id': person_id}),
                    'UpdateExpression': person_update,
                    'ConditionExpression': 'attribute_exists(person_id)',
                    'ExpressionAttributeNames': {'#events': 'events'},
                    'ExpressionAttributeValues': self._serialize({':event': {event_id}})
                }
            }
        ]

        try:
            self.client.transact_write_items(TransactItems=actions)
        except ClientError as e:
            self._raise_for_failure(e, event_id, person_id, adding)

    def _raise_for_failure(self, error: ClientError, event_id, person_id, adding):
        """Re-read both sides to turn a cancelled transaction into an error kind."""
        code = error.response.get('Error', {}).get('Code')
        if code == 'TransactionCanceledException':
            logger.warning(
                f"Attendance transaction cancelled for event {event_id}, "
                f"person {person_id} (reasons: {cancellation_codes(error)})"
            )
            event_item = self.events_table.get_item(
                Key={'event_id': event_id}, ConsistentRead=True
            ).get('Item')
            if not event_item:
                raise EventNotFound() from error

            attending = person_id in (event_item.get('attendees') or set())
            if adding and attending:
                raise AlreadyCheckedIn() from error
            if not adding and not attending:
                raise NotCheckedIn() from error

            person_item = self.people_table.get_item(
                Key={'person_id': person_id}, ConsistentRead=True
            ).get('Item')
            if not person_item:
                raise PersonNotFound() from error

        logger.error(f"Error writing attendance for event {event_id}, person {person_id}: {error}")
        raise StoreWriteError(f"Failed to write attendance: {error}", event_id) from error

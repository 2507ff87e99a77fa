"""DynamoDB-backed person store with unique emails."""
import logging
from typing import Optional

from botocore.exceptions import ClientError

from processor.errors import DuplicateEmail, StoreWriteError
from processor.models import Person
from processor.validation import new_identifier, normalize_email
from storage.dynamodb_manager import DynamoDBManager, cancellation_codes

logger = logging.getLogger(__name__)

EMAIL_CLAIM_PREFIX = 'email#'


def email_claim_key(email: str) -> str:
    return f"{EMAIL_CLAIM_PREFIX}{normalize_email(email)}"


class DynamoDBPersonStore(DynamoDBManager):
    """
    Keyed collection of Person records.

    DynamoDB has no unique secondary index, so each person owns a claim item
    keyed by its normalized email. The claim and the person are written in
    one transaction and the claim's attribute_not_exists condition is what
    makes emails unique.
    """

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        super().__init__(region_name=region_name)
        self.table_name = table_name
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBPersonStore for table: {table_name}")

    def find_by_id(self, person_id: str) -> Optional[Person]:
        if person_id.startswith(EMAIL_CLAIM_PREFIX):
            return None
        response = self.table.get_item(Key={'person_id': person_id}, ConsistentRead=True)
        item = response.get('Item')
        return self._item_to_person(item) if item else None

    def find_by_email(self, email: str) -> Optional[Person]:
        response = self.table.get_item(
            Key={'person_id': email_claim_key(email)}, ConsistentRead=True
        )
        claim = response.get('Item')
        if not claim:
            return None

        person = self.find_by_id(claim['owner_id'])
        if not person:
            logger.warning(f"Email claim for {email} points at missing person {claim['owner_id']}")
        return person

    def create(self, person: Person) -> Person:
        """
        Create a person and claim its email.

        Raises:
            DuplicateEmail: If another person already holds the email
            StoreWriteError: If the write fails for any other reason
        """
        created = Person(
            person_id=new_identifier(),
            name=person.name,
            email=person.email,
            events=set()
        )

        try:
            self.client.transact_write_items(TransactItems=[
                {
                    'Put': {
                        'TableName': self.table_name,
                        'Item': self._serialize(self._person_to_item(created)),
                        'ConditionExpression': 'attribute_not_exists(person_id)'
                    }
                },
                self._claim_action(created)
            ])
        except ClientError as e:
            if self._claim_taken(e, created.email):
                raise DuplicateEmail() from e
            logger.error(f"Error creating person {created.email}: {e}")
            raise StoreWriteError(f"Failed to create person: {e}", created.email) from e

        logger.info(f"Created person {created.person_id}")
        return created

    def save(self, person: Person) -> Person:
        """
        Update a person's name and email. The events set is left alone.

        Changing the email moves the claim in the same transaction.

        Raises:
            DuplicateEmail: If the new email is held by someone else
            StoreWriteError: If the person does not exist or the write fails
        """
        current = self.find_by_id(person.person_id)
        if not current:
            raise StoreWriteError("Person does not exist", person.person_id)

        actions = [{
            'Update': {
                'TableName': self.table_name,
                'Key': self._serialize({'person_id': person.person_id}),
                'UpdateExpression': 'SET #name = :name, #email = :email',
                'ConditionExpression': 'attribute_exists(person_id)',
                'ExpressionAttributeNames': {'#name': 'name', '#email': 'email'},
                'ExpressionAttributeValues': self._serialize({
                    ':name': person.name,
                    ':email': person.email
                })
            }
        }]

        if email_claim_key(current.email) != email_claim_key(person.email):
            actions.append({
                'Delete': {
                    'TableName': self.table_name,
                    'Key': self._serialize({'person_id': email_claim_key(current.email)})
                }
            })
            actions.append(self._claim_action(person))

        try:
            self.client.transact_write_items(TransactItems=actions)
        except ClientError as e:
            if len(actions) > 1 and self._claim_taken(e, person.email):
                raise DuplicateEmail() from e
            logger.error(f"Error saving person {person.person_id}: {e}")
            raise StoreWriteError(f"Failed to save person: {e}", person.person_id) from e

        return Person(
            person_id=current.person_id,
            name=person.name,
            email=person.email,
            events=current.events
        )

    def _claim_action(self, person: Person) -> dict:
        return {
            'Put': {
                'TableName': self.table_name,
                'Item': self._serialize({
                    'person_id': email_claim_key(person.email),
                    'owner_id': person.person_id
                }),
                'ConditionExpression': 'attribute_not_exists(person_id)'
            }
        }

    def _claim_taken(self, error: ClientError, email: str) -> bool:
        if error.response.get('Error', {}).get('Code') != 'TransactionCanceledException':
            return False
        logger.info(f"Transaction cancelled (reasons: {cancellation_codes(error)})")
        claim = self.table.get_item(
            Key={'person_id': email_claim_key(email)}, ConsistentRead=True
        ).get('Item')
        return claim is not None

"""Unit tests for the DynamoDB person store."""
import pytest

from processor.errors import DuplicateEmail, StoreWriteError
from processor.models import Person
from processor.validation import IDENTIFIER_PATTERN, new_identifier
from storage.person_store import email_claim_key


class TestDynamoDBPersonStore:
    """Test cases for the DynamoDB person store."""

    def test_create_person(self, person_store):
        """Test that create assigns an id and stores the person."""
        created = person_store.create(Person(name='Ada Lovelace', email='ada@example.com'))

        assert IDENTIFIER_PATTERN.match(created.person_id)
        assert created.events == set()

        stored = person_store.find_by_id(created.person_id)
        assert stored.name == 'Ada Lovelace'
        assert stored.email == 'ada@example.com'

    def test_find_by_email(self, person_store):
        """Test lookup by email, ignoring case."""
        created = person_store.create(Person(name='Ada Lovelace', email='ada@example.com'))

        assert person_store.find_by_email('ada@example.com').person_id == created.person_id
        assert person_store.find_by_email('ADA@Example.com').person_id == created.person_id
        assert person_store.find_by_email('alan@example.com') is None

    def test_create_duplicate_email(self, person_store):
        """Test that a second person cannot claim the same email."""
        person_store.create(Person(name='Ada Lovelace', email='ada@example.com'))

        with pytest.raises(DuplicateEmail):
            person_store.create(Person(name='Someone Else', email='Ada@example.com'))

    def test_find_by_id_ignores_email_claims(self, person_store):
        """Test that claim items are never returned as people."""
        person_store.create(Person(name='Ada Lovelace', email='ada@example.com'))

        assert person_store.find_by_id(email_claim_key('ada@example.com')) is None
        assert person_store.find_by_id(new_identifier()) is None

    def test_save_changes_name(self, person_store):
        """Test that save updates the name."""
        created = person_store.create(Person(name='Ada', email='ada@example.com'))
        created.name = 'Ada Lovelace'

        person_store.save(created)

        assert person_store.find_by_id(created.person_id).name == 'Ada Lovelace'

    def test_save_moves_email_claim(self, person_store):
        """Test that changing the email releases the old one."""
        created = person_store.create(Person(name='Ada Lovelace', email='ada@example.com'))
        created.email = 'countess@example.com'

        person_store.save(created)

        assert person_store.find_by_email('countess@example.com').person_id == created.person_id
        assert person_store.find_by_email('ada@example.com') is None

        # The released email can be claimed again
        person_store.create(Person(name='Another Ada', email='ada@example.com'))

    def test_save_to_taken_email(self, person_store):
        """Test that save refuses an email held by someone else."""
        ada = person_store.create(Person(name='Ada Lovelace', email='ada@example.com'))
        person_store.create(Person(name='Alan Turing', email='alan@example.com'))
        ada.email = 'alan@example.com'

        with pytest.raises(DuplicateEmail):
            person_store.save(ada)

        assert person_store.find_by_id(ada.person_id).email == 'ada@example.com'

    def test_save_unknown_person(self, person_store):
        """Test that save of a missing person fails."""
        with pytest.raises(StoreWriteError):
            person_store.save(Person(
                person_id=new_identifier(), name='Nobody', email='no@example.com'
            ))

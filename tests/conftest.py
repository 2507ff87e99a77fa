"""Shared fixtures: moto-backed DynamoDB tables and stores."""
from datetime import datetime, timezone

import boto3
import pytest
from moto import mock_aws

from processor.models import Event
from storage.attendance_store import DynamoDBAttendanceStore
from storage.event_store import DynamoDBEventStore
from storage.person_store import DynamoDBPersonStore

EVENTS_TABLE = 'test-events'
PEOPLE_TABLE = 'test-people'


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake credentials so nothing can reach a real AWS account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb_tables():
    """Create mock events and people tables."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        events_table = dynamodb.create_table(
            TableName=EVENTS_TABLE,
            KeySchema=[
                {'AttributeName': 'event_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'event_id', 'AttributeType': 'S'},
                {'AttributeName': 'external_link', 'AttributeType': 'S'}
            ],
            GlobalSecondaryIndexes=[
                {
                    'IndexName': 'external-link-index',
                    'KeySchema': [
                        {'AttributeName': 'external_link', 'KeyType': 'HASH'}
                    ],
                    'Projection': {'ProjectionType': 'ALL'}
                }
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        people_table = dynamodb.create_table(
            TableName=PEOPLE_TABLE,
            KeySchema=[
                {'AttributeName': 'person_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'person_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield events_table, people_table


@pytest.fixture
def event_store(dynamodb_tables):
    return DynamoDBEventStore(EVENTS_TABLE, people_table_name=PEOPLE_TABLE)


@pytest.fixture
def person_store(dynamodb_tables):
    return DynamoDBPersonStore(PEOPLE_TABLE)


@pytest.fixture
def attendance_store(dynamodb_tables):
    return DynamoDBAttendanceStore(EVENTS_TABLE, PEOPLE_TABLE)


@pytest.fixture
def stored_event(event_store):
    """A manually created public event."""
    return event_store.upsert(Event(
        name='Hack Night',
        location='Lawson B160',
        event_time=datetime(2024, 3, 1, 23, 0, tzinfo=timezone.utc)
    ))

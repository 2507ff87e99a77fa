"""AWS Lambda handler for event sync and attendance."""
import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict

from attendance.attendance_engine import AttendanceEngine
from catalog.event_catalog import EventCatalog
from feed.facebook_events import FacebookEventsClient
from processor.errors import DomainError, FetchError, InvalidSortOrder, StoreWriteError
from processor.event_processor import EventProcessor
from processor.models import Event, Person
from storage.attendance_store import DynamoDBAttendanceStore
from storage.event_store import DynamoDBEventStore
from storage.person_store import DynamoDBPersonStore
from sync.reconciliation import ReconciliationEngine, sync_window


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def event_to_dict(event: Event) -> Dict[str, Any]:
    return {
        'id': event.event_id,
        'name': event.name,
        'location': event.location,
        'eventTime': event.event_time.isoformat(),
        'externalLink': event.external_link,
        'isPrivate': event.is_private,
        'attendees': sorted(event.attendees)
    }


def person_to_dict(person: Person) -> Dict[str, Any]:
    return {
        'id': person.person_id,
        'name': person.name,
        'email': person.email,
        'events': sorted(person.events)
    }


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    The "action" key selects the operation. Scheduled (EventBridge) payloads
    carry no action and run a sync.

    Args:
        event: Invocation payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    events_table = os.environ.get('EVENTS_TABLE_NAME', 'events')
    people_table = os.environ.get('PEOPLE_TABLE_NAME', 'people')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    event = event or {}
    action = event.get('action', 'sync')
    logger.info(f"Lambda execution started", extra={'action': action})

    try:
        event_store = DynamoDBEventStore(
            table_name=events_table, people_table_name=people_table
        )

        if action == 'sync':
            return handle_sync(event_store, logger)

        person_store = DynamoDBPersonStore(table_name=people_table)

        if action in ('check_in', 'check_out'):
            engine = AttendanceEngine(
                event_store,
                person_store,
                DynamoDBAttendanceStore(events_table, people_table)
            )
            if action == 'check_in':
                updated = engine.check_in(
                    event.get('eventId'),
                    event.get('name'),
                    event.get('email'),
                    event.get('memberId')
                )
            else:
                updated = engine.check_out(event.get('eventId'), event.get('memberId'))
            return _response(200, {'event': event_to_dict(updated)})

        catalog = EventCatalog(event_store, person_store)
        return handle_catalog(catalog, action, event)

    except DomainError as e:
        logger.warning(f"Request rejected: {e}", extra={'error_type': e.kind})
        return _response(400, {'message': str(e), 'error_type': e.kind})

    except StoreWriteError as e:
        logger.error(f"Store write failed: {e}", exc_info=True)
        return _response(500, {
            'message': 'Failed to write to the store',
            'error': str(e),
            'error_type': type(e).__name__
        })

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, {
            'message': 'Request failed',
            'error': str(e),
            'error_type': type(e).__name__
        })


def handle_sync(event_store: DynamoDBEventStore, logger: logging.Logger) -> Dict[str, Any]:
    """Fetch the feed and reconcile the events table against it."""
    page = os.environ.get('FACEBOOK_PAGE', 'purduehackers')
    access_token = os.environ.get('FACEBOOK_ACCESS_TOKEN', '')
    days_back = int(os.environ.get('SYNC_DAYS_BACK', '365'))
    days_ahead = int(os.environ.get('SYNC_DAYS_AHEAD', '365'))
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))

    start_time = time.time()
    since, until = sync_window(datetime.now(timezone.utc), days_back, days_ahead)

    engine = ReconciliationEngine(
        event_store,
        feed=FacebookEventsClient(page, access_token, timeout=timeout_seconds),
        processor=EventProcessor()
    )

    try:
        logger.info("Synchronizing events with feed")
        result = engine.sync(since, until)
    except FetchError as e:
        logger.error(
            f"Failed to fetch events from feed after retries: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        duration = time.time() - start_time
        return _response(503, {
            'message': 'Failed to fetch feed events',
            'error': str(e),
            'error_type': type(e).__name__,
            'retryable': True,
            'note': 'Stored events were not modified',
            'duration_seconds': round(duration, 2)
        })

    duration = time.time() - start_time
    logger.info(
        f"Sync completed",
        extra={
            'duration_seconds': round(duration, 2),
            'events_created': len(result.created),
            'events_updated': len(result.updated),
            'events_deleted': len(result.deleted),
            'errors': result.errors
        }
    )

    body = {
        'message': 'Sync completed successfully',
        'window': {'since': since.isoformat(), 'until': until.isoformat()},
        'statistics': {
            'events_created': len(result.created),
            'events_updated': len(result.updated),
            'events_deleted': len(result.deleted),
            'events_failed': len(result.failed),
            'duration_seconds': round(duration, 2)
        }
    }
    body.update(result.to_dict())
    return _response(200, body)


def _sort_order(value: Any) -> bool:
    """True for ascending. Accepts 1 / -1 as sent by the events page."""
    try:
        return int(value) >= 0
    except (TypeError, ValueError) as e:
        raise InvalidSortOrder() from e


def handle_catalog(catalog: EventCatalog, action: str, event: Dict[str, Any]) -> Dict[str, Any]:
    """Manual event management actions."""
    if action == 'list_events':
        events = catalog.list_events(
            include_private=bool(event.get('includePrivate', False)),
            sort_by=event.get('sortBy', 'event_time'),
            ascending=_sort_order(event.get('order', 1))
        )
        return _response(200, {'events': [event_to_dict(e) for e in events]})

    if action == 'get_event':
        found = catalog.get_event(event.get('eventId'))
        attendees = catalog.get_attendees(found.event_id)
        body = event_to_dict(found)
        body['members'] = [person_to_dict(p) for p in attendees]
        return _response(200, {'event': body})

    if action == 'create_event':
        created = catalog.create_event(
            event.get('name'),
            event.get('location'),
            event.get('eventTime'),
            is_private=event.get('isPrivate', False),
            external_link=event.get('externalLink')
        )
        return _response(201, {'event': event_to_dict(created)})

    if action == 'update_event':
        updated = catalog.update_event(
            event.get('eventId'),
            event.get('name'),
            event.get('location'),
            event.get('eventTime'),
            is_private=event.get('isPrivate', False)
        )
        return _response(200, {'event': event_to_dict(updated)})

    if action == 'delete_event':
        deleted = catalog.delete_event(event.get('eventId'))
        return _response(200, {'event': event_to_dict(deleted)})

    return _response(400, {'message': f"Unknown action: {action}", 'error_type': 'UnknownAction'})

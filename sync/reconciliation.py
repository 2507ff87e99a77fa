"""Reconciles stored events against the external feed."""
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from botocore.exceptions import ClientError

from processor.errors import DuplicateExternalLink, FetchError, StoreWriteError
from processor.event_processor import EventProcessor
from processor.models import Event, ExternalEvent, SyncFailure, SyncResult

logger = logging.getLogger(__name__)


def sync_window(
    now: Optional[datetime] = None,
    days_back: int = 365,
    days_ahead: int = 365
) -> Tuple[datetime, datetime]:
    """
    Window used by the scheduled sync: a trailing year plus upcoming events.

    Args:
        now: Reference time, defaults to the current UTC time
        days_back: Days before now included in the window
        days_ahead: Days after now included in the window

    Returns:
        Tuple of (since, until) as aware UTC datetimes
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now - timedelta(days=days_back), now + timedelta(days=days_ahead)


class ReconciliationEngine:
    """Create/update/delete pass between the feed and the event store."""

    # Serializes passes within one process only
    _sync_lock = threading.Lock()

    def __init__(self, event_store, feed=None, processor: Optional[EventProcessor] = None):
        """
        Args:
            event_store: Store with find_in_window, find_by_external_link,
                upsert and delete
            feed: Client with fetch_events(since, until); only needed by sync()
            processor: Normalizer for raw feed events
        """
        self.event_store = event_store
        self.feed = feed
        self.processor = processor or EventProcessor()

    def sync(self, since: datetime, until: datetime) -> SyncResult:
        """
        Fetch the feed for the window and reconcile the store against it.

        Raises:
            FetchError: If the feed could not be read; the store is untouched
        """
        if self.feed is None:
            raise ValueError("ReconciliationEngine.sync requires a feed client")

        with self._sync_lock:
            try:
                raw_events = self.feed.fetch_events(since, until)
            except FetchError:
                raise
            except Exception as e:
                raise FetchError(f"Failed to fetch events: {e}") from e

            external_events = self.processor.process_events(raw_events)
            return self._reconcile(external_events, since, until)

    def reconcile(
        self,
        external_events: List[ExternalEvent],
        since: datetime,
        until: datetime
    ) -> SyncResult:
        """
        Apply one reconciliation pass for the window.

        Only events inside [since, until] that carry an external link are
        candidates for deletion. Events without an external link are never
        read, written or deleted here.

        Args:
            external_events: Current feed events, already limited to the window
            since: Window start
            until: Window end

        Returns:
            SyncResult with created, updated, deleted and failed ids
        """
        with self._sync_lock:
            return self._reconcile(external_events, since, until)

    def _reconcile(self, external_events, since, until) -> SyncResult:
        logger.info(f"Starting reconciliation with {len(external_events)} feed events")
        result = SyncResult()

        managed = {
            event.external_link: event
            for event in self.event_store.find_in_window(since, until)
            if event.is_upstream_managed
        }
        logger.info(f"Found {len(managed)} upstream-managed events in window")

        for external_event in external_events:
            link = external_event.external_link
            stored = managed.pop(link, None)
            if stored is None:
                # Might exist outside the window if its time moved
                stored = self._find_outside_window(link, result)
                if stored is False:
                    continue

            try:
                if stored is None:
                    created = self.event_store.upsert(self._new_event(external_event))
                    result.created.append(created.event_id)
                    logger.info(f"Created event {created.event_id} for {link}")
                else:
                    self.event_store.upsert(self._refreshed_event(stored, external_event))
                    result.updated.append(stored.event_id)
                    logger.debug(f"Updated event {stored.event_id} for {link}")
            except (StoreWriteError, DuplicateExternalLink) as e:
                logger.error(f"Failed to write event for {link}: {e}")
                result.failed.append(SyncFailure(item_id=link, error=str(e)))

        for link, stale in managed.items():
            try:
                self.event_store.delete(stale.event_id)
                result.deleted.append(stale.event_id)
                logger.info(f"Deleted event {stale.event_id} no longer in feed ({link})")
            except StoreWriteError as e:
                logger.error(f"Failed to delete event {stale.event_id}: {e}")
                result.failed.append(SyncFailure(item_id=stale.event_id, error=str(e)))

        logger.info(
            f"Reconciliation complete: {len(result.created)} created, "
            f"{len(result.updated)} updated, {len(result.deleted)} deleted, "
            f"{len(result.failed)} failed"
        )
        return result

    def _find_outside_window(self, link: str, result: SyncResult):
        """Stored event for the link, None if absent, False if the lookup failed."""
        try:
            return self.event_store.find_by_external_link(link)
        except ClientError as e:
            logger.error(f"Failed to look up event for {link}: {e}")
            result.failed.append(SyncFailure(item_id=link, error=str(e)))
            return False

    @staticmethod
    def _new_event(external_event: ExternalEvent) -> Event:
        return Event(
            name=external_event.name,
            location=external_event.place,
            event_time=external_event.start_time,
            external_link=external_event.external_link,
            is_private=False
        )

    @staticmethod
    def _refreshed_event(stored: Event, external_event: ExternalEvent) -> Event:
        return Event(
            event_id=stored.event_id,
            name=external_event.name,
            location=external_event.place,
            event_time=external_event.start_time,
            external_link=external_event.external_link,
            is_private=False,
            attendees=stored.attendees
        )

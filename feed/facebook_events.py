"""Graph API client for a Facebook page's events."""
import logging
import time
from datetime import datetime
from typing import List

import requests

from processor.errors import FetchError

logger = logging.getLogger(__name__)


class FacebookEventsClient:
    """Client that reads every event of a page within a time window."""

    BASE_URL = "https://graph.facebook.com"
    PAGE_LIMIT = 100
    MAX_PAGES = 50

    def __init__(
        self,
        page: str,
        access_token: str,
        timeout: int = 30,
        max_retries: int = 3,
        base_delay: float = 1
    ):
        """
        Initialize the events client.

        Args:
            page: Page name or id whose events are read
            access_token: Graph API access token
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts per page request before giving up
            base_delay: First backoff delay in seconds, doubled per attempt
        """
        self.page = page
        self.access_token = access_token
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay

    @property
    def events_url(self) -> str:
        return f"{self.BASE_URL}/{self.page}/events"

    def fetch_events(self, since: datetime, until: datetime) -> List[dict]:
        """
        Fetch all events between since and until, following pagination.

        Args:
            since: Window start
            until: Window end

        Returns:
            List of raw event dictionaries in feed order

        Raises:
            FetchError: If any page could not be read after retries
        """
        logger.info(
            f"Fetching events for page {self.page} "
            f"from {since.isoformat()} to {until.isoformat()}"
        )

        params = {
            'access_token': self.access_token,
            'since': int(since.timestamp()),
            'until': int(until.timestamp()),
            'limit': self.PAGE_LIMIT
        }

        events = []
        url = self.events_url
        pages = 0

        while url and pages < self.MAX_PAGES:
            payload = self._fetch_page(url, params)
            events.extend(payload.get('data', []))
            pages += 1

            # The "next" link already carries every query parameter
            url = (payload.get('paging') or {}).get('next')
            params = None

        if url:
            logger.warning(
                f"Stopped after {self.MAX_PAGES} pages; feed may be truncated"
            )

        logger.info(f"Successfully fetched {len(events)} events in {pages} page(s)")
        return events

    def _fetch_page(self, url: str, params) -> dict:
        """
        Fetch one page of results with retry logic.

        Raises:
            FetchError: If all retry attempts fail
        """
        for attempt in range(self.max_retries):
            try:
                logger.info(f"Fetching events page (attempt {attempt + 1}/{self.max_retries})")
                response = requests.get(url, params=params, timeout=self.timeout)
                response.raise_for_status()
                return response.json()

            except (requests.RequestException, ValueError) as e:
                if attempt < self.max_retries - 1:
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise FetchError(f"Failed to fetch events: {e}") from e

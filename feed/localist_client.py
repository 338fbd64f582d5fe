"""HTTP client for the Localist events feed."""
import logging

import requests

logger = logging.getLogger(__name__)


class FeedTransportError(Exception):
    """Raised when the events feed cannot be fetched."""

    def __init__(self, message: str, url: str = '', status_code: int = 0):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class LocalistFeedClient:
    """Client that fetches the raw events feed in a single request."""

    def __init__(self, timeout: int = 30):
        """
        Initialize the feed client.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.timeout = timeout

    def fetch(self, url: str) -> bytes:
        """
        Fetch the raw feed body.

        Failed fetches are not retried; the next scheduled run picks up
        where this one left off.

        Args:
            url: Feed URL, e.g. https://calendar.mit.edu/api/2/events?pp=500&days=365

        Returns:
            Response body as bytes

        Raises:
            FeedTransportError: On a missing URL, connection failure,
                timeout or non-2xx response
        """
        if not url or not url.strip():
            raise FeedTransportError("Feed URL is not configured")

        logger.info(f"Fetching events feed from {url}")
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            status_code = 0
            if e.response is not None:
                status_code = e.response.status_code
            logger.error(f"Failed to fetch events feed from {url}: {e}")
            raise FeedTransportError(
                f"Failed to fetch events feed: {e}",
                url=url,
                status_code=status_code
            ) from e

        logger.info(f"Fetched {len(response.content)} bytes from events feed")
        return response.content

"""Unit tests for LocalistFeedClient."""
import pytest
import responses
from requests.exceptions import ConnectionError, Timeout

from feed.localist_client import FeedTransportError, LocalistFeedClient

FEED_URL = "https://calendar.mit.edu/api/2/events?pp=500&days=365"


class TestLocalistFeedClient:
    """Test cases for LocalistFeedClient class."""

    @responses.activate
    def test_fetch_success(self):
        """Test the raw body is returned untouched."""
        body = b'{"events": []}'
        responses.add(responses.GET, FEED_URL, body=body, status=200)

        client = LocalistFeedClient(timeout=30)
        result = client.fetch(FEED_URL)

        assert result == body
        assert len(responses.calls) == 1

    @responses.activate
    def test_fetch_server_error_is_not_retried(self):
        """Test a non-2xx response raises on the first attempt."""
        responses.add(responses.GET, FEED_URL, body="Server Error", status=500)

        client = LocalistFeedClient()

        with pytest.raises(FeedTransportError) as exc_info:
            client.fetch(FEED_URL)

        assert exc_info.value.status_code == 500
        assert exc_info.value.url == FEED_URL
        assert len(responses.calls) == 1

    @responses.activate
    def test_fetch_not_found(self):
        """Test 404 surfaces as a transport error."""
        responses.add(responses.GET, FEED_URL, body="Not Found", status=404)

        with pytest.raises(FeedTransportError) as exc_info:
            LocalistFeedClient().fetch(FEED_URL)

        assert exc_info.value.status_code == 404

    @responses.activate
    def test_fetch_timeout(self):
        """Test timeout handling."""
        responses.add(responses.GET, FEED_URL, body=Timeout("Request timed out"))

        with pytest.raises(FeedTransportError) as exc_info:
            LocalistFeedClient(timeout=5).fetch(FEED_URL)

        assert isinstance(exc_info.value.__cause__, Timeout)
        assert exc_info.value.status_code == 0

    @responses.activate
    def test_fetch_connection_error(self):
        """Test connection failures surface as a transport error."""
        responses.add(responses.GET, FEED_URL, body=ConnectionError("refused"))

        with pytest.raises(FeedTransportError):
            LocalistFeedClient().fetch(FEED_URL)

    @pytest.mark.parametrize('url', ['', '   ', None])
    def test_fetch_without_url(self, url):
        """Test an unconfigured feed URL fails before any request."""
        with pytest.raises(FeedTransportError, match="not configured"):
            LocalistFeedClient().fetch(url)

"""HTTP(S) fetcher for ICS calendar feeds."""
import logging

import requests

from processor.models import FetchResult

logger = logging.getLogger(__name__)


class HttpCalendarFetcher:
    """Fetcher downloading calendar feeds over HTTP(S)."""

    # Exchange Online compatible user agent
    USER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/139.0.0.0 Safari/537.36"
    )

    def __init__(self, timeout: int = 30):
        """
        Initialize the calendar fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.timeout = timeout

    def fetch(self, url: str) -> FetchResult:
        """
        Fetch one calendar feed with a single attempt.

        Args:
            url: Calendar feed URL

        Returns:
            FetchResult with the status code and body, or with status_code
            None and the error text if the request failed in transport
        """
        logger.debug(f"Fetching calendar from: {url[:50]}...")

        try:
            with requests.get(
                url,
                headers={'User-Agent': self.USER_AGENT},
                timeout=self.timeout
            ) as response:
                return FetchResult(
                    status_code=response.status_code,
                    body=response.content
                )

        except requests.RequestException as e:
            logger.warning(f"Request for calendar failed: {e}")
            return FetchResult(status_code=None, error=str(e))

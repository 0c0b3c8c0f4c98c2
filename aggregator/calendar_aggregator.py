"""Aggregator merging several calendar feeds into one snapshot."""
import dataclasses
import logging
import time
from typing import List, Optional

from processor.ics_parser import IcsEventParser
from processor.models import CalendarConfig, CalendarSnapshot, Event, FetchResult
from storage.calendar_cache import CalendarCache

logger = logging.getLogger(__name__)


class CalendarAggregator:
    """Fetches configured calendars and keeps the cache in step."""

    # Stale cache is accepted up to this multiple of cache_max_age when
    # every source fails
    STALE_CACHE_MULTIPLIER = 24

    def __init__(self, fetcher, cache: CalendarCache, parser: Optional[IcsEventParser] = None):
        """
        Initialize the aggregator.

        Args:
            fetcher: Object with fetch(url) -> FetchResult
            cache: Cache store for snapshots
            parser: ICS parser (default: IcsEventParser())
        """
        self.fetcher = fetcher
        self.cache = cache
        self.parser = parser or IcsEventParser()

    def fetch_calendar_data(self, config: CalendarConfig) -> Optional[CalendarSnapshot]:
        """
        Get a snapshot of all configured calendars.

        Uses the cache unless config.force_refresh is set. Sources are
        fetched one after another; failed sources are skipped. When every
        source fails, an expired cache record up to STALE_CACHE_MULTIPLIER
        times cache_max_age old is returned instead.

        Args:
            config: Sources and cache settings

        Returns:
            CalendarSnapshot, or None if no URL is configured or nothing
            could be fetched or loaded from cache
        """
        urls = config.sources
        if not urls:
            logger.debug("No calendar URL configured")
            return None

        if not config.force_refresh:
            cached = self.cache.load(config.cache_max_age)
            if cached is not None:
                return dataclasses.replace(cached, is_cached=True)

        logger.info(f"Fetching {len(urls)} calendar(s)")

        all_events: List[Event] = []
        any_success = False

        for index, url in enumerate(urls, start=1):
            events = self._fetch_source(index, url)
            if events is not None:
                all_events.extend(events)
                any_success = True

        if any_success:
            all_events.sort(key=lambda event: event.start_time)
            snapshot = CalendarSnapshot(
                events=tuple(all_events),
                fetch_timestamp=int(time.time()),
                is_cached=False,
                source_count=len(urls)
            )
            self.cache.save(snapshot)
            return snapshot

        logger.warning("All calendar fetches failed")
        stale = self.cache.load(config.cache_max_age * self.STALE_CACHE_MULTIPLIER)
        if stale is not None:
            logger.info("Using stale calendar cache")
            return dataclasses.replace(stale, is_cached=True)
        return None

    def _fetch_source(self, index: int, url: str) -> Optional[List[Event]]:
        """
        Fetch and parse one calendar source.

        Returns:
            List of events, or None if the source failed
        """
        try:
            result: FetchResult = self.fetcher.fetch(url)
        except Exception as e:
            logger.warning(f"Failed to fetch calendar {index}: {e}")
            return None

        if not result.ok:
            logger.warning(
                f"Failed to fetch calendar {index} "
                f"code: {result.status_code} err: {result.error}"
            )
            return None

        events = self.parser.parse_events(result.body)
        logger.debug(f"Calendar {index} returned {len(events)} events")
        return events

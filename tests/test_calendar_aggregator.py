"""Unit tests for CalendarAggregator."""
from datetime import datetime
from unittest.mock import Mock, call

import pytest

from aggregator.calendar_aggregator import CalendarAggregator
from processor.models import CalendarConfig, CalendarSnapshot, Event, FetchResult
from storage.calendar_cache import CalendarCache


URL_A = "https://a.example.com/cal.ics"
URL_B = "https://b.example.com/cal.ics"


def local_ts(*args):
    return int(datetime(*args).timestamp())


def ics_feed(*events):
    """Build a feed from (summary, dtstart) pairs."""
    lines = ["BEGIN:VCALENDAR"]
    for summary, dtstart in events:
        lines += ["BEGIN:VEVENT", f"SUMMARY:{summary}", f"DTSTART:{dtstart}", "END:VEVENT"]
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines).encode('utf-8')


@pytest.fixture
def mock_cache():
    """Cache store mock with no stored record."""
    cache = Mock()
    cache.load.return_value = None
    cache.save.return_value = True
    return cache


@pytest.fixture
def cached_snapshot():
    return CalendarSnapshot(
        events=(Event(summary='Cached', start_time=local_ts(2024, 1, 15, 9, 0)),),
        fetch_timestamp=local_ts(2024, 1, 15, 8, 0),
        is_cached=False,
        source_count=1
    )


def fetcher_for(responses_by_url):
    fetcher = Mock()
    fetcher.fetch.side_effect = lambda url: responses_by_url[url]
    return fetcher


class TestCalendarAggregator:
    """Test cases for CalendarAggregator class."""

    def test_merges_and_sorts_sources(self, mock_cache):
        """Test events of two sources are merged in start order."""
        fetcher = fetcher_for({
            URL_A: FetchResult(200, ics_feed(("A", "20240115T100000"), ("B", "20240115T090000"))),
            URL_B: FetchResult(200, ics_feed(("C", "20240115T080000"))),
        })
        aggregator = CalendarAggregator(fetcher, mock_cache)

        snapshot = aggregator.fetch_calendar_data(CalendarConfig.from_sources([URL_A, URL_B]))

        assert [event.summary for event in snapshot.events] == ["C", "B", "A"]
        assert snapshot.is_cached is False
        assert snapshot.source_count == 2
        assert fetcher.fetch.call_args_list == [call(URL_A), call(URL_B)]
        mock_cache.save.assert_called_once_with(snapshot)

    def test_sort_keeps_source_order_for_ties(self, mock_cache):
        """Test events with the same start keep their fetch order."""
        fetcher = fetcher_for({
            URL_A: FetchResult(200, ics_feed(("First", "20240115T090000"))),
            URL_B: FetchResult(200, ics_feed(("Second", "20240115T090000"))),
        })

        snapshot = CalendarAggregator(fetcher, mock_cache).fetch_calendar_data(
            CalendarConfig.from_sources([URL_A, URL_B])
        )

        assert [event.summary for event in snapshot.events] == ["First", "Second"]

    def test_returns_fresh_cache_hit(self, mock_cache, cached_snapshot):
        """Test a cache hit is returned marked as cached without fetching."""
        mock_cache.load.return_value = cached_snapshot
        fetcher = Mock()

        snapshot = CalendarAggregator(fetcher, mock_cache).fetch_calendar_data(
            CalendarConfig.from_sources(URL_A, cache_max_age=600)
        )

        assert snapshot.is_cached is True
        assert snapshot.events == cached_snapshot.events
        assert cached_snapshot.is_cached is False
        mock_cache.load.assert_called_once_with(600)
        fetcher.fetch.assert_not_called()

    def test_force_refresh_skips_cache(self, mock_cache, cached_snapshot):
        """Test force_refresh fetches even with a cached record."""
        mock_cache.load.return_value = cached_snapshot
        fetcher = fetcher_for({URL_A: FetchResult(200, ics_feed(("Fresh", "20240115")))})

        snapshot = CalendarAggregator(fetcher, mock_cache).fetch_calendar_data(
            CalendarConfig.from_sources(URL_A, force_refresh=True)
        )

        assert snapshot.is_cached is False
        assert [event.summary for event in snapshot.events] == ["Fresh"]
        mock_cache.load.assert_not_called()

    def test_partial_failure_continues(self, mock_cache):
        """Test a failing source is skipped and others still count."""
        fetcher = fetcher_for({
            URL_A: FetchResult(500, b"Server Error"),
            URL_B: FetchResult(200, ics_feed(("Kept", "20240115T090000"))),
        })

        snapshot = CalendarAggregator(fetcher, mock_cache).fetch_calendar_data(
            CalendarConfig.from_sources([URL_A, URL_B])
        )

        assert [event.summary for event in snapshot.events] == ["Kept"]
        assert snapshot.source_count == 2
        mock_cache.save.assert_called_once()

    def test_fetcher_exception_treated_as_failure(self, mock_cache):
        """Test an exception from the fetcher only fails that source."""
        fetcher = Mock()
        fetcher.fetch.side_effect = [
            RuntimeError("socket closed"),
            FetchResult(200, ics_feed(("Kept", "20240115T090000"))),
        ]

        snapshot = CalendarAggregator(fetcher, mock_cache).fetch_calendar_data(
            CalendarConfig.from_sources([URL_A, URL_B])
        )

        assert [event.summary for event in snapshot.events] == ["Kept"]

    def test_success_with_no_events(self, mock_cache):
        """Test a successful empty feed still produces a snapshot."""
        fetcher = fetcher_for({URL_A: FetchResult(200, b"")})

        snapshot = CalendarAggregator(fetcher, mock_cache).fetch_calendar_data(
            CalendarConfig.from_sources(URL_A)
        )

        assert snapshot.events == ()
        mock_cache.save.assert_called_once_with(snapshot)

    def test_total_failure_uses_stale_cache(self, mock_cache, cached_snapshot):
        """Test stale cache up to 24x max age is used when all sources fail."""
        mock_cache.load.side_effect = [None, cached_snapshot]
        fetcher = fetcher_for({
            URL_A: FetchResult(None, error="timed out"),
            URL_B: FetchResult(404, b"Not Found"),
        })

        snapshot = CalendarAggregator(fetcher, mock_cache).fetch_calendar_data(
            CalendarConfig.from_sources([URL_A, URL_B], cache_max_age=3600)
        )

        assert snapshot.is_cached is True
        assert snapshot.events == cached_snapshot.events
        assert mock_cache.load.call_args_list == [call(3600), call(3600 * 24)]
        mock_cache.save.assert_not_called()

    def test_total_failure_without_cache(self, mock_cache):
        """Test None is returned when nothing can be fetched or loaded."""
        fetcher = fetcher_for({URL_A: FetchResult(503, b"")})

        snapshot = CalendarAggregator(fetcher, mock_cache).fetch_calendar_data(
            CalendarConfig.from_sources(URL_A)
        )

        assert snapshot is None
        mock_cache.save.assert_not_called()

    @pytest.mark.parametrize("sources", [None, "", [], ["", "  "]])
    def test_no_sources_configured(self, mock_cache, sources):
        """Test nothing is fetched or loaded without a URL."""
        fetcher = Mock()

        snapshot = CalendarAggregator(fetcher, mock_cache).fetch_calendar_data(
            CalendarConfig.from_sources(sources)
        )

        assert snapshot is None
        fetcher.fetch.assert_not_called()
        mock_cache.load.assert_not_called()

    def test_single_url_string(self, mock_cache):
        """Test a single URL string is accepted as source list."""
        fetcher = fetcher_for({URL_A: FetchResult(200, ics_feed(("Solo", "20240115")))})

        snapshot = CalendarAggregator(fetcher, mock_cache).fetch_calendar_data(
            CalendarConfig.from_sources(URL_A)
        )

        assert snapshot.source_count == 1
        assert snapshot.events[0].summary == "Solo"

    def test_malformed_feed_does_not_fail_source(self, mock_cache):
        """Test garbage content yields an empty but successful source."""
        fetcher = fetcher_for({
            URL_A: FetchResult(200, b"\x00\xff<html>not a calendar</html>"),
            URL_B: FetchResult(200, ics_feed(("Real", "20240115T090000"))),
        })

        snapshot = CalendarAggregator(fetcher, mock_cache).fetch_calendar_data(
            CalendarConfig.from_sources([URL_A, URL_B])
        )

        assert [event.summary for event in snapshot.events] == ["Real"]


class TestCalendarAggregatorWithFileCache:
    """Aggregator tests against the real file cache."""

    def test_fetch_then_cache_hit(self, tmp_path):
        """Test a fetched snapshot is served from the cache next time."""
        cache = CalendarCache(str(tmp_path / 'calendar.json'))
        fetcher = fetcher_for({URL_A: FetchResult(200, ics_feed(("Once", "20240115")))})
        aggregator = CalendarAggregator(fetcher, cache)
        config = CalendarConfig.from_sources(URL_A, cache_max_age=3600)

        first = aggregator.fetch_calendar_data(config)
        second = aggregator.fetch_calendar_data(config)

        assert first.is_cached is False
        assert second.is_cached is True
        assert second.events == first.events
        assert fetcher.fetch.call_count == 1

    def test_unusable_cache_record_with_failed_sources(self, tmp_path):
        """Test a cache record with an infinite timestamp is ignored, not raised."""
        cache_file = tmp_path / 'calendar.json'
        cache_file.write_text(
            '{"timestamp": Infinity, "data": {"events": [], "fetch_timestamp": 1}}',
            encoding='utf-8'
        )
        fetcher = fetcher_for({URL_A: FetchResult(None, error="timed out")})

        snapshot = CalendarAggregator(fetcher, CalendarCache(str(cache_file))).fetch_calendar_data(
            CalendarConfig.from_sources(URL_A)
        )

        assert snapshot is None
        assert fetcher.fetch.call_count == 1

"""AWS Lambda handler serving the day agenda of ICS calendars."""
import json
import logging
import os
import re
import time
from typing import Any, Dict, List

from aggregator.calendar_aggregator import CalendarAggregator
from fetcher.http_fetcher import HttpCalendarFetcher
from processor.day_filter import events_for_today, events_for_tomorrow, format_event_time
from processor.models import CalendarConfig
from storage.calendar_cache import CalendarCache, cache_path_for_sources


DAY_SELECTORS = {
    'today': events_for_today,
    'tomorrow': events_for_tomorrow,
}


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

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def parse_calendar_urls(value: str) -> List[str]:
    """Split a comma or whitespace separated list of calendar URLs."""
    return [url for url in re.split(r'[,\s]+', value) if url]


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'body': json.dumps(body)
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler returning the events of one day.

    Args:
        event: Invocation payload. Optional keys: 'day' ("today" or
            "tomorrow"), 'force_refresh' (bool), 'action' ("clear_cache")
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    # Read configuration from environment variables
    calendar_urls = parse_calendar_urls(os.environ.get('CALENDAR_URLS', ''))
    cache_dir = os.environ.get('CACHE_DIR', '/tmp/calendar-cache')
    cache_max_age = int(os.environ.get('CACHE_MAX_AGE', '3600'))
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    twelve_hour_clock = os.environ.get('TWELVE_HOUR_CLOCK', 'false').lower() == 'true'

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    event = event or {}
    day = event.get('day', 'today')
    force_refresh = str(event.get('force_refresh', False)).lower() == 'true'

    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={
            'calendar_count': len(calendar_urls),
            'day': day,
            'force_refresh': force_refresh
        }
    )

    try:
        cache = CalendarCache(cache_path_for_sources(cache_dir, calendar_urls))

        if event.get('action') == 'clear_cache':
            removed = cache.clear()
            logger.info("Calendar cache cleared", extra={'removed': removed})
            return _response(200, {'message': 'Cache cleared', 'removed': removed})

        select_events = DAY_SELECTORS.get(day)
        if select_events is None:
            return _response(400, {
                'message': f"Unknown day '{day}'",
                'allowed': sorted(DAY_SELECTORS)
            })

        config = CalendarConfig.from_sources(
            calendar_urls,
            cache_max_age=cache_max_age,
            force_refresh=force_refresh
        )
        aggregator = CalendarAggregator(
            fetcher=HttpCalendarFetcher(timeout=timeout_seconds),
            cache=cache
        )

        logger.info("Fetching calendar data")
        snapshot = aggregator.fetch_calendar_data(config)
        duration = time.time() - start_time

        if snapshot is None:
            logger.warning(
                "No calendar data available",
                extra={'duration_seconds': round(duration, 2)}
            )
            return _response(503, {
                'message': 'No calendar data available',
                'duration_seconds': round(duration, 2)
            })

        day_events = select_events(snapshot.events)
        events = []
        for item in day_events:
            data = item.to_dict()
            data['display_time'] = format_event_time(item, twelve_hour_clock)
            events.append(data)

        logger.info(
            "Lambda execution completed successfully",
            extra={
                'duration_seconds': round(duration, 2),
                'total_events': len(snapshot.events),
                'day_events': len(day_events),
                'is_cached': snapshot.is_cached
            }
        )

        return _response(200, {
            'message': 'Calendar loaded successfully',
            'day': day,
            'events': events,
            'is_cached': snapshot.is_cached,
            'fetch_timestamp': snapshot.fetch_timestamp,
            'source_count': snapshot.source_count,
            'duration_seconds': round(duration, 2)
        })

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Calendar request failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })

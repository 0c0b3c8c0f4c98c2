"""Selection and ordering of events for a single calendar day."""
import time
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from processor.models import Event

SECONDS_PER_DAY = 86400
DEFAULT_EVENT_DURATION = 3600


def day_window(target: float) -> Tuple[int, int]:
    """
    Get the local-time day containing a timestamp.

    Args:
        target: Any moment on the day of interest (epoch seconds)

    Returns:
        Tuple of (day_start, day_end) where day_end = day_start + 86400
    """
    midnight = datetime.fromtimestamp(target).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    day_start = int(midnight.timestamp())
    return day_start, day_start + SECONDS_PER_DAY


def effective_end(event: Event) -> int:
    """End of an event, defaulting to one day (all-day) or one hour."""
    if event.end_time is not None:
        return event.end_time
    if event.all_day:
        return event.start_time + SECONDS_PER_DAY
    return event.start_time + DEFAULT_EVENT_DURATION


def events_for_day(events: Iterable[Event], target: float) -> List[Event]:
    """
    Select the events overlapping the local day of target.

    An event is kept when it starts before the day ends and ends after the
    day starts, so events touching a day boundary belong to one day only.
    The result lists all-day events first, then timed events, each group by
    ascending start time; equal keys keep their input order.

    Args:
        events: Events to filter
        target: Any moment on the day of interest (epoch seconds)

    Returns:
        New list of matching events in display order
    """
    day_start, day_end = day_window(target)

    selected = [
        event for event in events
        if event.start_time < day_end and effective_end(event) > day_start
    ]
    return sorted(selected, key=lambda event: (not event.all_day, event.start_time))


def events_for_today(events: Iterable[Event], now: Optional[float] = None) -> List[Event]:
    if now is None:
        now = time.time()
    return events_for_day(events, now)


def events_for_tomorrow(events: Iterable[Event], now: Optional[float] = None) -> List[Event]:
    if now is None:
        now = time.time()
    return events_for_day(events, now + SECONDS_PER_DAY)


def format_event_time(event: Event, twelve_hour_clock: bool = False) -> str:
    """
    Format the start time of an event for display.

    Args:
        event: Event to format
        twelve_hour_clock: Use "9:30 AM" style instead of "09:30"

    Returns:
        "All Day" for all-day events, otherwise the local start time
    """
    if event.all_day:
        return "All Day"

    start = datetime.fromtimestamp(event.start_time)

    if not twelve_hour_clock:
        return f"{start.hour:02d}:{start.minute:02d}"

    period = 'PM' if start.hour >= 12 else 'AM'
    display_hour = start.hour % 12 or 12
    if start.minute == 0:
        return f"{display_hour} {period}"
    return f"{display_hour}:{start.minute:02d} {period}"

"""Resolver for ICS DATE and DATE-TIME tokens."""
import logging
from datetime import datetime
from typing import Optional, Tuple

from processor.models import ResolvedDate

logger = logging.getLogger(__name__)

DATE_LENGTH = 8


def resolve_date(token: Optional[str], date_only: bool = False) -> Optional[ResolvedDate]:
    """
    Resolve an ICS date token to a local epoch timestamp.

    Supported shapes:
        20241225          DATE, local midnight, all-day
        20241225T090000   DATE-TIME, local civil time
        20241225T090000Z  DATE-TIME; the UTC marker is accepted but not
                          applied, the fields are read as local time

    Args:
        token: Raw property value
        date_only: True when the property carried VALUE=DATE, which forces
            the result to be all-day

    Returns:
        ResolvedDate, or None if the token cannot be parsed
    """
    if token is None:
        return None

    token = token.strip()
    if len(token) == DATE_LENGTH and token.isdigit():
        clock = None
    elif _is_date_time(token):
        clock = token[DATE_LENGTH + 1:].rstrip('Z')
    else:
        logger.warning(f"Unknown date format: {token!r}")
        return None

    try:
        fields = _date_fields(token[:DATE_LENGTH])
        if clock is not None:
            fields += _time_fields(clock)
        timestamp = int(datetime(*fields).timestamp())
    except (ValueError, OverflowError, OSError) as e:
        logger.warning(f"Invalid date value {token!r}: {e}")
        return None

    return ResolvedDate(timestamp=timestamp, all_day=clock is None or date_only)


def _is_date_time(token: str) -> bool:
    if len(token) <= DATE_LENGTH + 1:
        return False
    if not token[:DATE_LENGTH].isdigit() or token[DATE_LENGTH] != 'T':
        return False

    clock = token[DATE_LENGTH + 1:]
    if clock.endswith('Z'):
        clock = clock[:-1]
    return clock.isdigit()


def _date_fields(digits: str) -> Tuple[int, ...]:
    return int(digits[0:4]), int(digits[4:6]), int(digits[6:8])


def _time_fields(clock: str) -> Tuple[int, ...]:
    # HHMMSS; missing minutes or seconds default to zero
    hour = int(clock[0:2])
    minute = int(clock[2:4]) if len(clock) >= 4 else 0
    second = int(clock[4:6]) if len(clock) >= 6 else 0
    return hour, minute, second

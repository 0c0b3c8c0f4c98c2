"""Data models for calendar ingestion."""
from dataclasses import dataclass
from typing import Any, Dict, NamedTuple, Optional, Sequence, Tuple, Union


class ResolvedDate(NamedTuple):
    """Timestamp resolved from an ICS date token."""
    timestamp: int
    all_day: bool


class PropertyLine(NamedTuple):
    """One tokenized content line: NAME;PARAM=VALUE:value."""
    name: str
    params: Dict[str, str]
    value: str


@dataclass(frozen=True)
class Event:
    """Calendar event resolved from a VEVENT block."""
    summary: str
    start_time: int
    all_day: bool = False
    end_time: Optional[int] = None
    uid: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert Event to a JSON-compatible dictionary.

        Optional fields are omitted when unset.
        """
        item = {
            'summary': self.summary,
            'start_time': self.start_time,
            'all_day': self.all_day
        }

        if self.end_time is not None:
            item['end_time'] = self.end_time
        if self.uid is not None:
            item['uid'] = self.uid
        if self.description is not None:
            item['description'] = self.description
        if self.location is not None:
            item['location'] = self.location

        return item

    @classmethod
    def from_dict(cls, item: Dict[str, Any]) -> 'Event':
        """
        Build an Event from a dictionary produced by to_dict.

        Raises:
            KeyError: If summary or start_time is missing
            ValueError: If start_time or end_time is not numeric
            OverflowError: If start_time or end_time is infinite
        """
        end_time = item.get('end_time')
        return cls(
            summary=str(item['summary']),
            start_time=int(item['start_time']),
            all_day=bool(item.get('all_day', False)),
            end_time=int(end_time) if end_time is not None else None,
            uid=item.get('uid'),
            description=item.get('description'),
            location=item.get('location')
        )


@dataclass(frozen=True)
class CalendarSnapshot:
    """Aggregated, sorted events of all configured calendars."""
    events: Tuple[Event, ...]
    fetch_timestamp: int
    is_cached: bool = False
    source_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'events': [event.to_dict() for event in self.events],
            'fetch_timestamp': self.fetch_timestamp,
            'is_cached': self.is_cached,
            'source_count': self.source_count
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CalendarSnapshot':
        """
        Build a CalendarSnapshot from a dictionary produced by to_dict.

        Raises:
            KeyError, TypeError, ValueError: If the dictionary is malformed
        """
        return cls(
            events=tuple(Event.from_dict(item) for item in data['events']),
            fetch_timestamp=int(data['fetch_timestamp']),
            is_cached=bool(data.get('is_cached', False)),
            source_count=int(data.get('source_count', 0))
        )


@dataclass(frozen=True)
class FetchResult:
    """Outcome of fetching one calendar source."""
    status_code: Optional[int]
    body: Optional[bytes] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200 and self.body is not None


@dataclass(frozen=True)
class CalendarConfig:
    """Per-call configuration for the calendar aggregator."""
    sources: Tuple[str, ...]
    cache_max_age: int = 3600
    force_refresh: bool = False

    @classmethod
    def from_sources(
        cls,
        sources: Union[str, Sequence[str], None],
        cache_max_age: int = 3600,
        force_refresh: bool = False
    ) -> 'CalendarConfig':
        """
        Build a config from a single URL or a list of URLs.

        Blank and missing entries are dropped.

        Args:
            sources: One URL string or a sequence of URL strings
            cache_max_age: Maximum cache age in seconds
            force_refresh: Skip the cache and always fetch

        Returns:
            CalendarConfig with normalized sources
        """
        if sources is None:
            urls = []
        elif isinstance(sources, str):
            urls = [sources]
        else:
            urls = list(sources)

        return cls(
            sources=tuple(url.strip() for url in urls if url and url.strip()),
            cache_max_age=cache_max_age,
            force_refresh=force_refresh
        )

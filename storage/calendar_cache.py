"""File-backed cache for aggregated calendar snapshots."""
import hashlib
import json
import logging
import os
import time
from typing import Optional, Sequence

from processor.models import CalendarSnapshot

logger = logging.getLogger(__name__)


def cache_path_for_sources(cache_dir: str, sources: Sequence[str]) -> str:
    """
    Derive the cache file path for a set of calendar URLs.

    The file name is a SHA256 hash of the URLs, so every configured set of
    calendars gets its own record.

    Args:
        cache_dir: Directory holding cache files
        sources: Calendar URLs in configured order

    Returns:
        Absolute or cache_dir-relative path of the JSON cache file
    """
    composite = '|'.join(sources)
    digest = hashlib.sha256(composite.encode('utf-8')).hexdigest()[:16]
    return os.path.join(cache_dir, f"calendar-{digest}.json")


class CalendarCache:
    """Persistent store for one CalendarSnapshot record."""

    def __init__(self, cache_path: str):
        """
        Initialize the cache store.

        Args:
            cache_path: Path of the JSON cache file
        """
        self.cache_path = cache_path

    def save(self, snapshot: CalendarSnapshot) -> bool:
        """
        Write a snapshot with the current timestamp, replacing any old record.

        Args:
            snapshot: Snapshot to persist

        Returns:
            True on success, False if the file could not be written
        """
        record = {
            'timestamp': int(time.time()),
            'data': snapshot.to_dict()
        }
        tmp_path = f"{self.cache_path}.tmp"

        try:
            cache_dir = os.path.dirname(self.cache_path)
            if cache_dir:
                os.makedirs(cache_dir, exist_ok=True)

            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(record, f)
            os.replace(tmp_path, self.cache_path)

        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error writing calendar cache {self.cache_path}: {e}")
            self._remove_tmp(tmp_path)
            return False

        logger.debug(f"Calendar cache saved with {len(snapshot.events)} events")
        return True

    def load(self, max_age: float) -> Optional[CalendarSnapshot]:
        """
        Read the cached snapshot if it is recent enough.

        Args:
            max_age: Maximum record age in seconds

        Returns:
            CalendarSnapshot, or None if the record is missing, unreadable,
            malformed or older than max_age
        """
        try:
            with open(self.cache_path, 'r', encoding='utf-8') as f:
                record = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, RecursionError) as e:
            logger.warning(f"Failed to read calendar cache: {e}")
            return None

        try:
            timestamp = int(record['timestamp'])
            snapshot = CalendarSnapshot.from_dict(record['data'])
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            logger.warning(f"Malformed calendar cache record: {e}")
            return None

        age = int(time.time()) - timestamp
        if age > max_age:
            logger.debug(f"Calendar cache too old ({age} seconds)")
            return None

        logger.debug(f"Loaded calendar from cache (age: {age} seconds)")
        return snapshot

    @staticmethod
    def _remove_tmp(tmp_path: str) -> None:
        try:
            os.remove(tmp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove partial cache file {tmp_path}: {e}")

    def clear(self) -> bool:
        """
        Delete the cache record.

        Returns:
            True if a record was removed, False if there was none
        """
        try:
            os.remove(self.cache_path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Failed to clear calendar cache: {e}")
            return False

        logger.debug("Calendar cache cleared")
        return True

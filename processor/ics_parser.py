"""Parser turning ICS feed text into Event objects."""
import logging
import re
from typing import Dict, List, Optional, Union

from processor.date_resolver import resolve_date
from processor.models import Event, PropertyLine

logger = logging.getLogger(__name__)

BEGIN_EVENT = 'BEGIN:VEVENT'
END_EVENT = 'END:VEVENT'

TEXT_PROPERTIES = ('SUMMARY', 'DESCRIPTION', 'LOCATION')

# Newline followed by one space or tab joins a continuation line
_FOLD = re.compile(r'\n[ \t]')

# Applied in order; the backslash collapse has to stay last
_ESCAPES = (
    ('\\,', ','),
    ('\\;', ';'),
    ('\\n', '\n'),
    ('\\N', '\n'),
    ('\\\\', '\\'),
)


def unfold_lines(text: str) -> List[str]:
    """
    Split feed text into logical lines.

    CRLF is normalized to LF, and every line starting with a space or tab is
    appended to the previous line minus that one whitespace character.
    Empty lines are dropped.

    Args:
        text: Raw feed text

    Returns:
        List of unfolded logical lines
    """
    unfolded = _FOLD.sub('', text.replace('\r\n', '\n'))
    return [line for line in unfolded.split('\n') if line]


def unescape_text(value: Optional[str]) -> Optional[str]:
    """Reverse ICS text escaping (\\, \\; \\n \\N \\\\)."""
    if value is None:
        return None

    for escaped, plain in _ESCAPES:
        value = value.replace(escaped, plain)
    return value


def tokenize_line(line: str) -> Optional[PropertyLine]:
    """
    Split a content line into name, parameters and value.

    Grammar: NAME[;PARAM=VALUE...]:VALUE. The name ends at the first ':' or
    ';', parameters sit between the name and the first colon, and the value
    is everything after the last colon.

    Args:
        line: One unfolded logical line

    Returns:
        PropertyLine, or None if the line has no colon or no name
    """
    first_colon = line.find(':')
    if first_colon < 0:
        return None

    head = line[:first_colon]
    name, _, raw_params = head.partition(';')
    name = name.strip().upper()
    if not name:
        return None

    params: Dict[str, str] = {}
    if raw_params:
        for param in raw_params.split(';'):
            key, _, param_value = param.partition('=')
            if key.strip():
                params[key.strip().upper()] = param_value.strip()

    value = line[line.rfind(':') + 1:]
    return PropertyLine(name=name, params=params, value=value)


class IcsEventParser:
    """Parser for VEVENT blocks of an ICS feed."""

    def parse_events(self, content: Union[str, bytes, None]) -> List[Event]:
        """
        Parse all VEVENT blocks of a feed.

        A broken block never aborts the feed: unparseable lines and
        properties are skipped, and blocks without SUMMARY or a valid
        DTSTART are dropped.

        Args:
            content: Feed body as text or raw bytes

        Returns:
            List of Event objects in source order
        """
        if not content:
            return []
        if isinstance(content, bytes):
            content = content.decode('utf-8', errors='replace')

        events = []
        for block in self.extract_blocks(unfold_lines(content)):
            try:
                event = self._parse_block(block)
            except Exception as e:
                logger.warning(f"Failed to parse event block: {e}")
                continue
            if event:
                events.append(event)

        logger.debug(f"Parsed {len(events)} events from ICS")
        return events

    def extract_blocks(self, lines: List[str]) -> List[List[str]]:
        """
        Collect the property lines of every VEVENT block.

        Blocks run from BEGIN:VEVENT to the first END:VEVENT after it.
        Lines of nested components (VALARM and the like) are left out, and
        an unterminated block at the end of the input is discarded.

        Args:
            lines: Unfolded logical lines

        Returns:
            One list of property lines per complete block
        """
        blocks = []
        current: Optional[List[str]] = None
        nested: List[str] = []

        for line in lines:
            marker = line.strip().upper()

            if current is None:
                if marker == BEGIN_EVENT:
                    current = []
                    nested = []
            elif marker == END_EVENT:
                blocks.append(current)
                current = None
            elif marker == BEGIN_EVENT:
                # overlapping begin, the open block keeps going
                pass
            elif marker.startswith('BEGIN:'):
                nested.append(marker[len('BEGIN:'):])
            elif marker.startswith('END:') and nested:
                if nested[-1] == marker[len('END:'):]:
                    nested.pop()
            elif not nested:
                current.append(line)

        if current is not None:
            logger.debug("Dropping unterminated VEVENT block")

        return blocks

    def _parse_block(self, lines: List[str]) -> Optional[Event]:
        """
        Assemble one Event from the property lines of a block.

        Returns:
            Event, or None if SUMMARY or DTSTART is missing
        """
        fields: Dict[str, object] = {}

        for line in lines:
            prop = tokenize_line(line)
            if prop is None:
                logger.debug(f"Skipped malformed line: {line[:60]!r}")
            elif not self._apply_property(fields, prop):
                logger.debug(f"Skipped property {prop.name}")

        if fields.get('summary') is None or fields.get('start_time') is None:
            logger.debug(
                f"Dropping event without summary or start: {fields.get('uid')}"
            )
            return None

        return Event(**fields)

    def _apply_property(self, fields: Dict[str, object], prop: PropertyLine) -> bool:
        """
        Store a recognized property into the event fields.

        Returns:
            True if the property changed the event, False if it was skipped
        """
        if prop.name in TEXT_PROPERTIES:
            fields[prop.name.lower()] = unescape_text(prop.value)
        elif prop.name == 'UID':
            fields['uid'] = prop.value
        elif prop.name == 'DTSTART':
            date_only = prop.params.get('VALUE', '').upper() == 'DATE'
            resolved = resolve_date(prop.value, date_only=date_only)
            if resolved is None:
                return False
            fields['start_time'] = resolved.timestamp
            fields['all_day'] = resolved.all_day
        elif prop.name == 'DTEND':
            resolved = resolve_date(prop.value)
            if resolved is None:
                return False
            fields['end_time'] = resolved.timestamp
        else:
            return False

        return True

"""
Recurrence rule translation.

Google Calendar accepts recurrence as RFC 5545 text, but it is stricter than
most exporters: UNTIL has to be a UTC timestamp and only a subset of parts is
reliably honoured. translate_rule() rebuilds the RRULE from its parts in a
fixed order instead of passing the exported text through.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, date
from typing import Any, List, Optional, Union

from dateutil import tz as dateutil_tz

WEEKDAY_PATTERN = re.compile(r'^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$')


def _values(rule: Any, key: str) -> List[Any]:
    """Read an RRULE part as a list. vRecur stores every part as a list."""
    value = rule.get(key)
    if value is None:
        value = rule.get(key.lower())
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _first(rule: Any, key: str):
    values = _values(rule, key)
    return values[0] if values else None


@dataclass
class RecurrenceRule:
    """The RRULE parts that are carried over to Google Calendar"""
    freq: Optional[str] = None
    interval: Optional[int] = None
    until: Optional[Union[datetime, date]] = None
    count: Optional[int] = None
    by_day: List[Any] = field(default_factory=list)
    by_month_day: List[int] = field(default_factory=list)
    by_month: List[int] = field(default_factory=list)

    @classmethod
    def from_ical(cls, rule: Any) -> 'RecurrenceRule':
        """Build from an icalendar vRecur (or any mapping of RRULE parts)"""
        freq = _first(rule, 'FREQ')
        interval = _first(rule, 'INTERVAL')
        count = _first(rule, 'COUNT')
        return cls(
            freq=str(freq).upper() if freq else None,
            interval=int(interval) if interval is not None else None,
            until=_first(rule, 'UNTIL'),
            count=int(count) if count is not None else None,
            by_day=[str(day) for day in _values(rule, 'BYDAY')],
            by_month_day=[int(d) for d in _values(rule, 'BYMONTHDAY')],
            by_month=[int(m) for m in _values(rule, 'BYMONTH')],
        )


def format_until(until: Union[datetime, date]) -> str:
    """Render UNTIL as YYYYMMDDTHHMMSSZ in UTC.

    Floating (naive) times and plain dates are taken as UTC.
    """
    if not isinstance(until, datetime):
        until = datetime(until.year, until.month, until.day, tzinfo=dateutil_tz.UTC)
    elif until.tzinfo is None:
        until = until.replace(tzinfo=dateutil_tz.UTC)
    else:
        until = until.astimezone(dateutil_tz.UTC)

    return (f"{until.year:04d}{until.month:02d}{until.day:02d}"
            f"T{until.hour:02d}{until.minute:02d}{until.second:02d}Z")


def format_weekday(day: Any) -> str:
    """Render a BYDAY entry: '1MO', '-1FR', 'WE'. Accepts strings or (pos, day) pairs."""
    if isinstance(day, (tuple, list)):
        pos, code = day
        code = str(code).upper()
        if not WEEKDAY_PATTERN.match(code):
            raise ValueError(f"Invalid weekday: {day!r}")
        return f"{int(pos)}{code}" if pos else code

    match = WEEKDAY_PATTERN.match(str(day).strip().upper())
    if not match:
        raise ValueError(f"Invalid weekday: {day!r}")
    ordinal, code = match.groups()
    return f"{int(ordinal)}{code}" if ordinal and int(ordinal) else code


def _join_numbers(values: List[Any]) -> str:
    return ','.join(str(int(v)) for v in values)


def translate_rule(rule: Any) -> Optional[str]:
    """Convert a recurrence rule into a Google 'RRULE:...' string.

    Returns None when nothing translatable is present or the rule is malformed.
    """
    if rule is None:
        return None

    try:
        if not isinstance(rule, RecurrenceRule):
            rule = RecurrenceRule.from_ical(rule)

        parts = []

        if rule.freq:
            parts.append(f"FREQ={rule.freq}")

        if rule.interval and rule.interval > 1:
            parts.append(f"INTERVAL={rule.interval}")

        if rule.until:
            parts.append(f"UNTIL={format_until(rule.until)}")

        if rule.count:
            parts.append(f"COUNT={rule.count}")

        if rule.by_day:
            days = [format_weekday(day) for day in rule.by_day]
            parts.append(f"BYDAY={','.join(days)}")

        if rule.by_month_day:
            parts.append(f"BYMONTHDAY={_join_numbers(rule.by_month_day)}")

        if rule.by_month:
            parts.append(f"BYMONTH={_join_numbers(rule.by_month)}")

    except (AttributeError, TypeError, ValueError, KeyError, OverflowError) as e:
        print(f"Warning: Could not convert recurrence rule: {e}")
        return None

    if not parts:
        return None
    return 'RRULE:' + ';'.join(parts)

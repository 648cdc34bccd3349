"""
ICS parsing.

Reads an iCalendar document with the icalendar library and flattens every
VEVENT into a CalendarEvent record holding just the fields the importer
needs. Nothing here looks at the identity tables or the Google API.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime, date, timedelta
from typing import Any, List, Optional, Union

from icalendar import Calendar

from ics_identity import extract_email


class ICSParseError(ValueError):
    """The input is not a readable iCalendar document"""


@dataclass
class EventTime:
    value: Union[datetime, date]
    tzid: Optional[str] = None

    @property
    def is_all_day(self) -> bool:
        return isinstance(self.value, date) and not isinstance(self.value, datetime)


@dataclass
class RawIdentity:
    """An ORGANIZER or ATTENDEE exactly as exported"""
    email: Optional[str] = None
    name: Optional[str] = None
    status: Optional[str] = None
    role: Optional[str] = None


@dataclass
class Alarm:
    action: Optional[str]
    trigger: timedelta


@dataclass
class CalendarEvent:
    uid: Optional[str] = None
    summary: str = ''
    description: str = ''
    location: str = ''
    start: Optional[EventTime] = None
    end: Optional[EventTime] = None
    rrule: Optional[Any] = None  # vRecur, mapping of parts or RecurrenceRule
    recurrence_id: Optional[EventTime] = None
    organizer: Optional[RawIdentity] = None
    attendees: List[RawIdentity] = field(default_factory=list)
    status: Optional[str] = None
    transparency: Optional[str] = None
    classification: Optional[str] = None
    alarms: List[Alarm] = field(default_factory=list)

    @property
    def is_recurrence_exception(self) -> bool:
        return self.recurrence_id is not None


def _text(value) -> str:
    return str(value) if value is not None else ''


def _param(prop, name: str) -> Optional[str]:
    params = getattr(prop, 'params', None)
    if not params:
        return None
    value = params.get(name)
    return str(value) if value else None


def _zone_label(prop) -> Optional[str]:
    """TZID parameter, else the zone carried by the parsed value itself"""
    tzid = _param(prop, 'TZID')
    if tzid:
        return tzid

    value = getattr(prop, 'dt', None)
    tzinfo = getattr(value, 'tzinfo', None)
    if tzinfo is None:
        return None

    # pytz zones expose .zone, zoneinfo zones expose .key
    for attr in ('zone', 'key'):
        name = getattr(tzinfo, attr, None)
        if name:
            return str(name)
    if value.utcoffset() == timedelta(0):
        return 'UTC'
    return None


def _event_time(prop) -> Optional[EventTime]:
    if prop is None or not hasattr(prop, 'dt'):
        return None
    return EventTime(value=prop.dt, tzid=_zone_label(prop))


def _identity(prop) -> RawIdentity:
    status = _param(prop, 'PARTSTAT')
    role = _param(prop, 'ROLE')
    return RawIdentity(
        email=extract_email(prop),
        name=_param(prop, 'CN'),
        status=status.upper() if status else None,
        role=role.upper() if role else None,
    )


def _end_time(vevent, start: Optional[EventTime]) -> Optional[EventTime]:
    end = _event_time(vevent.get('dtend'))
    if end or not start:
        return end

    duration = vevent.get('duration')
    if duration is not None and isinstance(getattr(duration, 'dt', None), timedelta):
        return EventTime(value=start.value + duration.dt, tzid=start.tzid)

    # RFC 5545 3.6.1: a date start lasts one day, a date-time start has no length
    if start.is_all_day:
        return EventTime(value=start.value + timedelta(days=1), tzid=start.tzid)
    return EventTime(value=start.value, tzid=start.tzid)


def _alarms(vevent) -> List[Alarm]:
    alarms = []
    for component in vevent.walk('VALARM'):
        trigger = component.get('trigger')
        if trigger is None or not isinstance(getattr(trigger, 'dt', None), timedelta):
            continue
        action = component.get('action')
        alarms.append(Alarm(action=str(action).upper() if action else None,
                            trigger=trigger.dt))
    return alarms


def event_from_vevent(vevent) -> CalendarEvent:
    """Flatten one icalendar VEVENT component"""
    uid = vevent.get('uid')
    start = _event_time(vevent.get('dtstart'))

    rrule = vevent.get('rrule')
    if isinstance(rrule, list):
        rrule = rrule[0] if rrule else None

    organizer = vevent.get('organizer')

    attendees = vevent.get('attendee')
    if attendees is None:
        attendees = []
    elif not isinstance(attendees, list):
        attendees = [attendees]

    status = vevent.get('status')
    transp = vevent.get('transp')
    classification = vevent.get('class')

    return CalendarEvent(
        uid=str(uid) if uid else None,
        summary=_text(vevent.get('summary')),
        description=_text(vevent.get('description')),
        location=_text(vevent.get('location')),
        start=start,
        end=_end_time(vevent, start),
        rrule=rrule or None,
        recurrence_id=_event_time(vevent.get('recurrence-id')),
        organizer=_identity(organizer) if organizer is not None else None,
        attendees=[_identity(attendee) for attendee in attendees],
        status=str(status).upper() if status else None,
        transparency=str(transp).upper() if transp else None,
        classification=str(classification).upper() if classification else None,
        alarms=_alarms(vevent),
    )


def parse_calendar(data: Union[bytes, str]) -> List[CalendarEvent]:
    """Parse ICS text into CalendarEvent records, in document order"""
    try:
        cal = Calendar.from_ical(data)
    except ValueError as e:
        raise ICSParseError(f"Error parsing ICS data: {e}") from e

    return [event_from_vevent(component) for component in cal.walk('VEVENT')]


def load_calendar(ics_path: str) -> List[CalendarEvent]:
    """Read and parse an ICS file"""
    if not os.path.exists(ics_path):
        raise FileNotFoundError(f"ICS file not found: {ics_path}")

    file_size = os.path.getsize(ics_path)
    print(f"\nParsing: {ics_path}")
    print(f"File size: {file_size / 1024 / 1024:.2f} MB")

    with open(ics_path, 'rb') as f:
        raw_data = f.read()

    events = parse_calendar(raw_data)
    print(f"Found {len(events)} events in file")
    return events

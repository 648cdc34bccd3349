"""
Conversion of parsed ICS events into Google Calendar event bodies.

EventConverter.convert() decides, for each CalendarEvent, between three
outcomes: a full event body, a body with an unresolvable organizer or
attendee left out, or None when the event should not be imported at all
(a materialized instance of a recurring series).
"""

import random
import re
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from dateutil import tz as dateutil_tz

from ics_identity import IdentityResolver
from ics_recurrence import translate_rule
from ics_source import CalendarEvent, EventTime
from ics_timezones import get_iana_zone, normalize_timezone

# Exchange exports every occurrence of a series as its own VEVENT with a UID
# like "<series uid>_R20240306T140000@domain"
RECURRING_INSTANCE_PATTERN = re.compile(r'^(.+)_R\d{8}T?\d*(@.+)?$')

PARTSTAT_MAPPINGS = {
    'ACCEPTED': 'accepted',
    'DECLINED': 'declined',
    'TENTATIVE': 'tentative',
    'NEEDS-ACTION': 'needsAction',
}

# Google Calendar limits
MAX_REMINDER_MINUTES = 40320
MAX_REMINDERS = 5


def convert_partstat(partstat: Optional[str]) -> str:
    """Map an ICS PARTSTAT to a Google responseStatus"""
    if not partstat:
        return 'needsAction'
    return PARTSTAT_MAPPINGS.get(str(partstat).upper(), 'needsAction')


def is_recurring_instance_uid(uid: Optional[str]) -> bool:
    return bool(uid) and bool(RECURRING_INSTANCE_PATTERN.match(uid))


def generate_ical_uid() -> str:
    """Fallback UID for events exported without one. Not stable across runs."""
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"imported-{int(time.time() * 1000)}-{suffix}"


def format_instant(value: datetime, tz_label: str) -> str:
    """Render a date-time as a UTC ISO-8601 instant.

    Floating times are read in the event's own zone when that is a known IANA
    zone, otherwise as UTC.
    """
    if value.tzinfo is None:
        zone = get_iana_zone(tz_label)
        if zone is not None:
            value = zone.localize(value)
        else:
            value = value.replace(tzinfo=dateutil_tz.UTC)
    return value.astimezone(dateutil_tz.UTC).strftime('%Y-%m-%dT%H:%M:%SZ')


def project_time(event_time: EventTime) -> Dict[str, str]:
    """Render an EventTime in Google's start/end/originalStartTime shape"""
    if event_time.is_all_day:
        return {'date': event_time.value.isoformat()}

    tz_label = normalize_timezone(event_time.tzid)
    return {
        'dateTime': format_instant(event_time.value, tz_label),
        'timeZone': tz_label,
    }


@dataclass
class ConvertedEvent:
    """A Google event body plus the bookkeeping the delivery step needs"""
    body: Dict[str, Any]
    is_recurrence_exception: bool = False
    original_ical_uid: Optional[str] = None
    original_summary: Optional[str] = None

    @property
    def ical_uid(self) -> str:
        return self.body['iCalUID']

    @property
    def summary(self) -> str:
        return self.body.get('summary') or '(no title)'

    @property
    def has_recurrence(self) -> bool:
        return bool(self.body.get('recurrence'))

    def to_record(self) -> Dict[str, Any]:
        """Body plus the _metadata block, as stored in the JSONL file"""
        record = dict(self.body)
        record['_metadata'] = {
            'isRecurrenceException': self.is_recurrence_exception,
            'hasRecurrence': self.has_recurrence,
            'originalICalUID': self.original_ical_uid,
            'originalSummary': self.original_summary,
        }
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'ConvertedEvent':
        body = dict(record)
        metadata = body.pop('_metadata', None) or {}
        if 'iCalUID' not in body:
            raise ValueError("Event record has no iCalUID")
        return cls(
            body=body,
            is_recurrence_exception=bool(metadata.get('isRecurrenceException')),
            original_ical_uid=metadata.get('originalICalUID'),
            original_summary=metadata.get('originalSummary'),
        )


class EventConverter:
    """Converts CalendarEvents using a fixed set of identity tables"""

    def __init__(self, resolver: IdentityResolver, include_attendees: bool = True):
        self.resolver = resolver
        self.include_attendees = include_attendees
        self.stats = {
            'converted': 0,
            'instances_skipped': 0,
            'exceptions': 0,
            'organizers_dropped': 0,
            'attendees_dropped': 0,
        }

    def convert(self, event: CalendarEvent) -> Optional[ConvertedEvent]:
        """Convert one event. Returns None for series instances that are skipped."""
        is_exception = event.is_recurrence_exception

        # The series is imported once, through its defining event
        if not is_exception and is_recurring_instance_uid(event.uid):
            self.stats['instances_skipped'] += 1
            return None

        body = {
            'summary': event.summary,
            'description': event.description,
            'location': event.location,
            'iCalUID': event.uid or generate_ical_uid(),
        }

        if is_exception:
            body['originalStartTime'] = project_time(event.recurrence_id)
            self.stats['exceptions'] += 1

        if event.start:
            body['start'] = project_time(event.start)
        if event.end:
            body['end'] = project_time(event.end)

        if event.rrule:
            rule = translate_rule(event.rrule)
            if rule:
                body['recurrence'] = [rule]

        if event.organizer:
            organizer = self.resolver.resolve(event.organizer.email, event.organizer.name)
            if organizer:
                body['organizer'] = organizer.to_google()
            else:
                self.stats['organizers_dropped'] += 1

        if self.include_attendees and event.attendees:
            attendees = self._convert_attendees(event)
            if attendees:
                body['attendees'] = attendees

        self._add_status_fields(event, body)

        reminders = self._convert_reminders(event)
        if reminders:
            body['reminders'] = {'useDefault': False, 'overrides': reminders}

        self.stats['converted'] += 1
        return ConvertedEvent(
            body=body,
            is_recurrence_exception=is_exception,
            original_ical_uid=event.uid,
            original_summary=event.summary,
        )

    def convert_all(self, events: Iterable[CalendarEvent]) -> List[ConvertedEvent]:
        converted = []
        for event in events:
            result = self.convert(event)
            if result is not None:
                converted.append(result)
        return converted

    def _convert_attendees(self, event: CalendarEvent) -> List[Dict[str, Any]]:
        attendees = []
        for attendee in event.attendees:
            resolved = self.resolver.resolve(attendee.email, attendee.name)
            if not resolved:
                self.stats['attendees_dropped'] += 1
                continue

            att_data = resolved.to_google()
            att_data['responseStatus'] = convert_partstat(attendee.status)
            att_data['optional'] = attendee.role == 'OPT-PARTICIPANT'
            attendees.append(att_data)
        return attendees

    @staticmethod
    def _add_status_fields(event: CalendarEvent, body: Dict[str, Any]) -> None:
        if event.status:
            if event.status == 'CANCELLED':
                body['status'] = 'cancelled'
            elif event.status == 'TENTATIVE':
                body['status'] = 'tentative'
            else:
                body['status'] = 'confirmed'

        if event.transparency:
            body['transparency'] = 'transparent' if event.transparency == 'TRANSPARENT' else 'opaque'

        if event.classification:
            if event.classification == 'PRIVATE':
                body['visibility'] = 'private'
            elif event.classification == 'CONFIDENTIAL':
                body['visibility'] = 'confidential'
            else:
                body['visibility'] = 'default'

    @staticmethod
    def _convert_reminders(event: CalendarEvent) -> List[Dict[str, Any]]:
        reminders = []
        seen = set()
        for alarm in event.alarms:
            minutes = min(abs(int(alarm.trigger / timedelta(minutes=1))), MAX_REMINDER_MINUTES)
            method = 'email' if alarm.action == 'EMAIL' else 'popup'
            if (method, minutes) in seen:
                continue
            seen.add((method, minutes))
            reminders.append({'method': method, 'minutes': minutes})
        return reminders[:MAX_REMINDERS]

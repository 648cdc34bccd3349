"""
Zone-name normalization for ICS imports.

Outlook and Exchange exports label times with Windows zone names such as
"Central Standard Time". Google Calendar only accepts IANA identifiers, so
every TZID is passed through normalize_timezone() before it is sent.
"""

from typing import Optional

import pytz

# Windows/Outlook zone names to IANA identifiers
TIMEZONE_MAPPINGS = {
    'Eastern Standard Time': 'America/New_York',
    'Eastern Daylight Time': 'America/New_York',
    'Central Standard Time': 'America/Chicago',
    'Central Daylight Time': 'America/Chicago',
    'Mountain Standard Time': 'America/Denver',
    'Mountain Daylight Time': 'America/Denver',
    'US Mountain Standard Time': 'America/Phoenix',
    'Pacific Standard Time': 'America/Los_Angeles',
    'Pacific Daylight Time': 'America/Los_Angeles',
    'Alaskan Standard Time': 'America/Anchorage',
    'Alaska Standard Time': 'America/Anchorage',
    'Hawaiian Standard Time': 'Pacific/Honolulu',
    'Atlantic Standard Time': 'America/Halifax',
    'Newfoundland Standard Time': 'America/St_Johns',
    'SA Pacific Standard Time': 'America/Bogota',
    'Venezuela Standard Time': 'America/Caracas',
    'E. South America Standard Time': 'America/Sao_Paulo',
    'Argentina Standard Time': 'America/Buenos_Aires',
    'GMT Standard Time': 'Europe/London',
    'Greenwich Standard Time': 'Atlantic/Reykjavik',
    'W. Europe Standard Time': 'Europe/Berlin',
    'Central Europe Standard Time': 'Europe/Prague',
    'Central European Standard Time': 'Europe/Warsaw',
    'Romance Standard Time': 'Europe/Paris',
    'E. Europe Standard Time': 'Europe/Bucharest',
    'GTB Standard Time': 'Europe/Athens',
    'FLE Standard Time': 'Europe/Kiev',
    'Russian Standard Time': 'Europe/Moscow',
    'Turkey Standard Time': 'Europe/Istanbul',
    'Israel Standard Time': 'Asia/Jerusalem',
    'South Africa Standard Time': 'Africa/Johannesburg',
    'Egypt Standard Time': 'Africa/Cairo',
    'Arabian Standard Time': 'Asia/Dubai',
    'India Standard Time': 'Asia/Kolkata',
    'SE Asia Standard Time': 'Asia/Bangkok',
    'Singapore Standard Time': 'Asia/Singapore',
    'China Standard Time': 'Asia/Shanghai',
    'Taipei Standard Time': 'Asia/Taipei',
    'Korea Standard Time': 'Asia/Seoul',
    'Tokyo Standard Time': 'Asia/Tokyo',
    'AUS Eastern Standard Time': 'Australia/Sydney',
    'E. Australia Standard Time': 'Australia/Brisbane',
    'AUS Central Standard Time': 'Australia/Darwin',
    'Cen. Australia Standard Time': 'Australia/Adelaide',
    'W. Australia Standard Time': 'Australia/Perth',
    'New Zealand Standard Time': 'Pacific/Auckland',
    'UTC': 'UTC',
    'Coordinated Universal Time': 'UTC',
}


def normalize_timezone(tz_str: Optional[str]) -> str:
    """Map a zone label to an IANA identifier.

    Empty or missing labels become 'UTC'. Known Windows names are mapped via
    TIMEZONE_MAPPINGS; anything else (including names that are already IANA)
    is returned unchanged.
    """
    if not tz_str:
        return 'UTC'

    tz_str = str(tz_str).strip()
    if not tz_str:
        return 'UTC'

    if tz_str in TIMEZONE_MAPPINGS:
        return TIMEZONE_MAPPINGS[tz_str]

    return tz_str


def get_iana_zone(tz_str: Optional[str]):
    """Return a pytz zone for a normalized label, or None if it is not IANA"""
    try:
        return pytz.timezone(normalize_timezone(tz_str))
    except pytz.UnknownTimeZoneError:
        return None

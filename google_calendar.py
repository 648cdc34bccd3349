"""
Google Calendar API access.

authenticate() runs the OAuth 2.0 installed-app flow and caches the token.
CalendarClient wraps the handful of Calendar v3 calls the importer makes,
including the sequence-number aware update used when Google rejects an
update because the event changed underneath us.

Setup:
    1. Go to https://console.cloud.google.com/
    2. Create a new project (or select existing)
    3. Enable the Google Calendar API
    4. Create OAuth 2.0 credentials ("Desktop app") and download the JSON file
    5. Save it as "credentials.json" (or pass --credentials)
"""

import os
import pickle
import sys
import time
from typing import Any, Callable, Dict, List, Optional

from google.auth.transport.requests import Request
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

# OAuth scopes
SCOPES = ['https://www.googleapis.com/auth/calendar']

MAX_SEQUENCE_RETRIES = 3
RATE_LIMIT_WAIT_SECONDS = 60

CREDENTIALS_HELP = """
To set up Google Calendar API credentials:
1. Go to https://console.cloud.google.com/
2. Create a new project or select an existing one
3. Enable the Google Calendar API:
   - Go to 'APIs & Services' > 'Library'
   - Search for 'Google Calendar API' and enable it
4. Create OAuth 2.0 credentials:
   - Go to 'APIs & Services' > 'Credentials'
   - Click 'Create Credentials' > 'OAuth client ID'
   - Choose 'Desktop app' as application type
   - Download the JSON file
5. Save the downloaded file as '{credentials_file}'"""


def authenticate(credentials_file: str = 'credentials.json',
                 token_file: str = 'data/token.pickle'):
    """Authenticate with Google using OAuth 2.0 and build a Calendar v3 service"""
    creds = None

    if os.path.exists(token_file):
        with open(token_file, 'rb') as token:
            creds = pickle.load(token)

    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            print("Refreshing expired credentials...")
            creds.refresh(Request())
        else:
            if not os.path.exists(credentials_file):
                raise FileNotFoundError(
                    f"Credentials file '{credentials_file}' not found!\n"
                    + CREDENTIALS_HELP.format(credentials_file=credentials_file))

            print("\nOpening browser for Google authentication...")
            print("(If browser doesn't open, check the URL in the terminal)\n")

            flow = InstalledAppFlow.from_client_secrets_file(credentials_file, SCOPES)
            creds = flow.run_local_server(port=0)

        token_dir = os.path.dirname(token_file)
        if token_dir:
            os.makedirs(token_dir, exist_ok=True)
        with open(token_file, 'wb') as token:
            pickle.dump(creds, token)
        print("Authentication successful! Credentials saved.\n")
        sys.stdout.flush()

    print("Building Google Calendar API service...")
    sys.stdout.flush()
    return build('calendar', 'v3', credentials=creds)


def error_status(error: Any) -> Optional[int]:
    """HTTP status of an API error, wherever the error type keeps it"""
    if error is None:
        return None

    candidates = [
        getattr(getattr(error, 'resp', None), 'status', None),
        getattr(error, 'status_code', None),
        getattr(error, 'code', None),
        getattr(getattr(error, 'response', None), 'status', None),
    ]
    for candidate in candidates:
        try:
            return int(candidate)
        except (TypeError, ValueError):
            continue
    return None


def error_message(error: Any) -> str:
    if error is None:
        return ''
    message = getattr(error, 'message', None)
    if isinstance(message, str) and message:
        return message
    if isinstance(error, HttpError):
        return f"{error.reason or ''} {error.content.decode('utf-8', 'replace')}"
    if isinstance(error, BaseException):
        return str(error)
    return ''


def is_sequence_error(error: Any) -> bool:
    """True if an update was rejected because of a stale sequence number"""
    try:
        if 'invalid sequence' in error_message(error).lower():
            return True
        return error_status(error) == 409
    except Exception:
        return False


class CalendarClient:
    """Calendar v3 calls scoped to one calendar"""

    def __init__(self, service, calendar_id: str = 'primary',
                 sleep: Callable[[float], None] = time.sleep):
        self.service = service
        self.calendar_id = calendar_id
        self.sleep = sleep

    def _execute(self, request):
        """Execute a request, waiting out one rate-limit response"""
        try:
            return request.execute()
        except HttpError as e:
            if e.resp.status != 429:
                raise
            print(f"\nRate limit hit, waiting {RATE_LIMIT_WAIT_SECONDS} seconds...")
            sys.stdout.flush()
            self.sleep(RATE_LIMIT_WAIT_SECONDS)
            return request.execute()

    def event_exists(self, ical_uid: str) -> bool:
        """Look up an event by iCalUID. Lookup failures count as 'not found'."""
        try:
            result = self._execute(self.service.events().list(
                calendarId=self.calendar_id,
                iCalUID=ical_uid,
                maxResults=1,
            ))
        except HttpError as e:
            print(f"Warning: Could not check for existing event {ical_uid}: {e}")
            return False
        return bool(result.get('items'))

    def import_event(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Import an event. The import API does not notify attendees."""
        return self._execute(self.service.events().import_(
            calendarId=self.calendar_id,
            supportsAttendees=True,
            body=body,
        ))

    def update_event(self, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._execute(self.service.events().update(
            calendarId=self.calendar_id,
            eventId=event_id,
            supportsAttendees=True,
            body=body,
        ))

    def get_sequence(self, event_id: str) -> int:
        """Current sequence number of an event (0 when Google reports none)"""
        event = self._execute(self.service.events().get(
            calendarId=self.calendar_id,
            eventId=event_id,
        ))
        return int(event.get('sequence') or 0)

    def update_event_with_retry(self, event_id: str, body: Dict[str, Any],
                                max_retries: int = MAX_SEQUENCE_RETRIES) -> Dict[str, Any]:
        """Update with sequence = current + 1, retrying on sequence conflicts.

        Other errors are raised straight away. When every attempt conflicts,
        the last conflict error is raised.
        """
        last_error = None
        for attempt in range(1, max_retries + 1):
            sequence = self.get_sequence(event_id)
            try:
                return self.update_event(event_id, dict(body, sequence=sequence + 1))
            except Exception as e:
                if not is_sequence_error(e):
                    raise
                last_error = e
                print(f"   Sequence conflict on attempt {attempt}/{max_retries}, retrying...")

        if last_error is None:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        raise last_error

    def list_calendars(self) -> List[Dict[str, Any]]:
        """List all calendars accessible by the authenticated user"""
        calendars = []
        page_token = None

        while True:
            calendar_list = self._execute(
                self.service.calendarList().list(pageToken=page_token))
            for calendar in calendar_list.get('items', []):
                calendars.append({
                    'id': calendar['id'],
                    'summary': calendar.get('summary', 'Untitled'),
                    'primary': calendar.get('primary', False),
                    'accessRole': calendar.get('accessRole', ''),
                })
            page_token = calendar_list.get('nextPageToken')
            if not page_token:
                break

        return calendars

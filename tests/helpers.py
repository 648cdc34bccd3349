"""Fake Google Calendar API objects shared by the tests."""

import json
from typing import Any, Dict, List, Optional
from unittest import mock

from googleapiclient.errors import HttpError

from ics_converter import ConvertedEvent


def make_http_error(status: int, message: str = "error", reason: Optional[str] = None) -> HttpError:
    """Build an HttpError the way googleapiclient raises it"""
    resp = mock.Mock(status=status, reason=message)
    error = {"code": status, "message": message}
    if reason:
        error["errors"] = [{"reason": reason, "message": message}]
    return HttpError(resp, json.dumps({"error": error}).encode("utf-8"))


def make_event(uid: str, recurring: bool = False, exception: bool = False,
               summary: Optional[str] = None) -> ConvertedEvent:
    body = {
        "summary": summary or f"Event {uid}",
        "description": "",
        "location": "",
        "iCalUID": uid,
        "start": {"dateTime": "2024-03-15T14:00:00Z", "timeZone": "UTC"},
        "end": {"dateTime": "2024-03-15T15:00:00Z", "timeZone": "UTC"},
        "organizer": {"email": "host@example.com", "displayName": "Host"},
        "attendees": [{"email": "guest@example.com", "displayName": "Guest",
                       "responseStatus": "accepted", "optional": False}],
    }
    if recurring:
        body["recurrence"] = ["RRULE:FREQ=WEEKLY;COUNT=10"]
    if exception:
        body["originalStartTime"] = {"dateTime": "2024-03-13T14:00:00Z", "timeZone": "UTC"}
    return ConvertedEvent(body=body, is_recurrence_exception=exception,
                          original_ical_uid=uid, original_summary=body["summary"])


class FakeRequest:
    def __init__(self, resource, method: str, kwargs: Dict[str, Any]):
        self.resource = resource
        self.method = method
        self.kwargs = kwargs

    def execute(self):
        return self.resource.execute(self.method, self.kwargs)


class FakeEventsResource:
    """Stands in for service.events(); records every executed call.

    failures[method] is a queue of exceptions (or None for success) consumed
    one per call. sequences is a queue of values returned by get().
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.existing = set()
        self.failures: Dict[str, list] = {"list": [], "import": [], "update": [], "get": []}
        self.sequences: List[Optional[int]] = []

    def list(self, **kwargs):
        return FakeRequest(self, "list", kwargs)

    def import_(self, **kwargs):
        return FakeRequest(self, "import", kwargs)

    def update(self, **kwargs):
        return FakeRequest(self, "update", kwargs)

    def get(self, **kwargs):
        return FakeRequest(self, "get", kwargs)

    def calls_to(self, method: str) -> List[Dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    def execute(self, method: str, kwargs: Dict[str, Any]):
        self.calls.append((method, kwargs))

        queue = self.failures[method]
        if queue:
            error = queue.pop(0)
            if error is not None:
                raise error

        if method == "list":
            uid = kwargs["iCalUID"]
            return {"items": [{"id": f"id-{uid}", "iCalUID": uid}] if uid in self.existing else []}
        if method == "import":
            uid = kwargs["body"]["iCalUID"]
            self.existing.add(uid)
            return dict(kwargs["body"], id=f"id-{uid}")
        if method == "update":
            return dict(kwargs["body"], id=kwargs["eventId"])
        if method == "get":
            event = {"id": kwargs["eventId"]}
            if self.sequences:
                sequence = self.sequences.pop(0)
                if sequence is not None:
                    event["sequence"] = sequence
            return event
        raise AssertionError(f"unexpected method {method}")


class FakeCalendarListResource:
    def __init__(self, pages: List[Dict[str, Any]]):
        self.pages = pages
        self.calls: List[Dict[str, Any]] = []

    def list(self, **kwargs):
        return FakeRequest(self, "list", kwargs)

    def execute(self, method: str, kwargs: Dict[str, Any]):
        self.calls.append(kwargs)
        return self.pages[len(self.calls) - 1]


class FakeService:
    def __init__(self, calendar_pages: Optional[List[Dict[str, Any]]] = None):
        self.events_resource = FakeEventsResource()
        self.calendar_list_resource = FakeCalendarListResource(calendar_pages or [{"items": []}])

    def events(self):
        return self.events_resource

    def calendarList(self):
        return self.calendar_list_resource

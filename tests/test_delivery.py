#!/usr/bin/env python3
"""
Unit tests for batch delivery with checkpoint/resume.

Run with: pytest tests/ -v
"""

import pytest

from google_calendar import CalendarClient
from helpers import FakeService, make_event, make_http_error
from ics_checkpoint import CheckpointStore
from ics_delivery import BatchDelivery, DeliveryAborted, DeliveryStats, failure_hints


@pytest.fixture
def checkpoint(tmp_path):
    return CheckpointStore(str(tmp_path / "calendar.ics"))


def make_delivery(service, checkpoint, **kwargs):
    client = CalendarClient(service, sleep=lambda seconds: None)
    return BatchDelivery(client, checkpoint, **kwargs)


def imported_uids(service):
    return [call["body"]["iCalUID"] for call in service.events().calls_to("import")]


class TestDeliver:
    """Tests for BatchDelivery.deliver()"""

    def test_all_events_in_order(self, fake_service, checkpoint):
        events = [make_event(uid) for uid in "abcde"]
        stats = make_delivery(fake_service, checkpoint).deliver(events)

        assert imported_uids(fake_service) == list("abcde")
        assert stats == DeliveryStats(succeeded=5)
        assert not checkpoint.exists()

    def test_import_body_sent_unchanged(self, fake_service, checkpoint):
        event = make_event("a")
        make_delivery(fake_service, checkpoint).deliver([event])

        call = fake_service.events().calls_to("import")[0]
        assert call["body"] == event.body
        assert call["supportsAttendees"] is True

    def test_abort_keeps_checkpoint_at_last_success(self, fake_service, checkpoint, capsys):
        events = [make_event(uid) for uid in "abcde"]
        fake_service.events().failures["import"] = [None, None, None, make_http_error(400, "Bad Request")]

        with pytest.raises(DeliveryAborted) as exc_info:
            make_delivery(fake_service, checkpoint).deliver(events)

        assert exc_info.value.index == 3
        assert exc_info.value.stats.succeeded == 3
        assert checkpoint.load() == 2
        err = capsys.readouterr().err
        assert "Failed to import 'Event d'" in err
        assert "Invalid date/time format" in err

    def test_resume_makes_no_calls_for_confirmed_events(self, checkpoint):
        """A resumed run sends exactly what an unbroken run sends for the remaining events"""
        events = [make_event("a"), make_event("b", recurring=True), make_event("c"),
                  make_event("d", recurring=True), make_event("e")]

        failing = FakeService()
        failing.events().failures["import"] = [None, None, None, make_http_error(500, "Backend Error")]
        with pytest.raises(DeliveryAborted):
            make_delivery(failing, checkpoint).deliver(events)

        resumed = FakeService()
        stats = make_delivery(resumed, checkpoint).deliver(events, resume_from=checkpoint.load())

        unbroken = FakeService()
        make_delivery(unbroken, CheckpointStore(str(checkpoint.source_path) + ".other")).deliver(events)

        assert stats.resumed == 3
        assert stats.succeeded == 2
        assert imported_uids(resumed) == ["d", "e"]
        assert resumed.events().calls == unbroken.events().calls[-len(resumed.events().calls):]
        assert not checkpoint.exists()

    def test_skip_errors_continues(self, fake_service, checkpoint, capsys):
        events = [make_event(uid) for uid in "abcd"]
        fake_service.events().failures["import"] = [None, make_http_error(403, "Forbidden")]

        stats = make_delivery(fake_service, checkpoint, skip_errors=True).deliver(events)

        assert stats.succeeded == 3
        assert stats.failed == 1
        assert imported_uids(fake_service) == list("abcd")
        assert "Insufficient permissions" in capsys.readouterr().err

    def test_skip_errors_checkpoint_stops_before_failure(self, fake_service, checkpoint):
        """The failed event is retried on the next run"""
        events = [make_event(uid) for uid in "abcd"]
        fake_service.events().failures["import"] = [None, make_http_error(500, "Backend Error")]

        make_delivery(fake_service, checkpoint, skip_errors=True).deliver(events)

        assert checkpoint.load() == 0

    def test_skip_errors_first_event_fails(self, fake_service, checkpoint):
        events = [make_event(uid) for uid in "abc"]
        fake_service.events().failures["import"] = [make_http_error(500, "Backend Error")]

        make_delivery(fake_service, checkpoint, skip_errors=True).deliver(events)

        assert checkpoint.load() == -1

    def test_duplicates_skipped(self, fake_service, checkpoint):
        events = [make_event(uid) for uid in "abc"]
        fake_service.events().existing.add("b")

        stats = make_delivery(fake_service, checkpoint, check_duplicates=True).deliver(events)

        assert imported_uids(fake_service) == ["a", "c"]
        assert stats.succeeded == 2
        assert stats.skipped_duplicates == 1
        assert [call["iCalUID"] for call in fake_service.events().calls_to("list")] == list("abc")

    def test_duplicate_advances_checkpoint(self, fake_service, checkpoint):
        events = [make_event(uid) for uid in "abc"]
        fake_service.events().existing.add("b")
        fake_service.events().failures["import"] = [None, make_http_error(500, "Backend Error")]

        with pytest.raises(DeliveryAborted):
            make_delivery(fake_service, checkpoint, check_duplicates=True).deliver(events)

        assert checkpoint.load() == 1

    def test_no_duplicate_lookup_by_default(self, fake_service, checkpoint):
        fake_service.events().existing.add("a")
        make_delivery(fake_service, checkpoint).deliver([make_event("a")])

        assert fake_service.events().calls_to("list") == []
        assert imported_uids(fake_service) == ["a"]

    def test_recurring_event_updated_after_import(self, fake_service, checkpoint):
        event = make_event("series", recurring=True)
        make_delivery(fake_service, checkpoint).deliver([event])

        events = fake_service.events()
        assert [name for name, _ in events.calls] == ["import", "update"]
        update = events.calls_to("update")[0]
        assert update["eventId"] == "id-series"
        assert update["body"] == event.body

    def test_exception_not_updated(self, fake_service, checkpoint):
        make_delivery(fake_service, checkpoint).deliver([make_event("series", exception=True)])
        assert [name for name, _ in fake_service.events().calls] == ["import"]

    def test_recurring_update_sequence_conflict(self, fake_service, checkpoint):
        """A conflicting follow-up update is retried with a fresh sequence"""
        events = fake_service.events()
        events.failures["update"] = [make_http_error(409, "Conflict")]
        events.sequences = [7]

        stats = make_delivery(fake_service, checkpoint).deliver([make_event("series", recurring=True)])

        assert stats.succeeded == 1
        assert [name for name, _ in events.calls] == ["import", "update", "get", "update"]
        assert events.calls_to("update")[1]["body"]["sequence"] == 8

    def test_recurring_update_other_failure(self, fake_service, checkpoint):
        fake_service.events().failures["update"] = [make_http_error(400, "Bad Request")]

        with pytest.raises(DeliveryAborted):
            make_delivery(fake_service, checkpoint).deliver([make_event("series", recurring=True)])

        assert fake_service.events().calls_to("get") == []

    def test_not_participant_falls_back(self, fake_service, checkpoint):
        """Imported again without organizer and attendees"""
        fake_service.events().failures["import"] = [
            make_http_error(400, "Bad Request", reason="participantIsNeitherOrganizerNorAttendee"),
        ]

        stats = make_delivery(fake_service, checkpoint).deliver([make_event("a")])

        calls = fake_service.events().calls_to("import")
        assert len(calls) == 2
        assert "organizer" in calls[0]["body"]
        assert "organizer" not in calls[1]["body"]
        assert "attendees" not in calls[1]["body"]
        assert stats.succeeded == 1
        assert stats.imported_without_attendees == 1

    def test_not_participant_recurring_update_without_people(self, fake_service, checkpoint):
        """The follow-up update sends the same reduced body the import accepted"""
        not_participant = make_http_error(400, "Bad Request",
                                          reason="participantIsNeitherOrganizerNorAttendee")
        events = fake_service.events()
        events.failures["import"] = [not_participant]
        original_execute = events.execute

        def reject_updates_with_people(method, kwargs):
            if method == "update" and ("attendees" in kwargs["body"] or "organizer" in kwargs["body"]):
                events.calls.append((method, kwargs))
                raise not_participant
            return original_execute(method, kwargs)

        events.execute = reject_updates_with_people

        stats = make_delivery(fake_service, checkpoint).deliver([make_event("r1", recurring=True)])

        update = events.calls_to("update")[0]
        assert "organizer" not in update["body"]
        assert "attendees" not in update["body"]
        assert update["body"]["recurrence"] == ["RRULE:FREQ=WEEKLY;COUNT=10"]
        assert stats.succeeded == 1
        assert stats.failed == 0
        assert not checkpoint.exists()

    def test_processed_counts_attempted_events(self, fake_service, checkpoint):
        """Resumed events are not part of the processed total"""
        events = [make_event(uid) for uid in "abcd"]
        fake_service.events().existing.add("c")
        fake_service.events().failures["import"] = [None, make_http_error(500, "Backend Error")]

        stats = make_delivery(fake_service, checkpoint, check_duplicates=True,
                              skip_errors=True).deliver(events, resume_from=0)

        assert stats.resumed == 1
        assert (stats.succeeded, stats.skipped_duplicates, stats.failed) == (1, 1, 1)
        assert stats.processed == 3

    def test_resume_past_end(self, fake_service, checkpoint):
        events = [make_event(uid) for uid in "ab"]
        stats = make_delivery(fake_service, checkpoint).deliver(events, resume_from=5)

        assert fake_service.events().calls == []
        assert stats.resumed == 2


class TestFailureHints:
    """Tests for failure_hints()"""

    def test_bad_request(self):
        assert "Invalid attendee email addresses" in failure_hints(make_http_error(400, "Bad Request"))

    def test_forbidden(self):
        assert "Calendar API quota exceeded" in failure_hints(make_http_error(403, "Forbidden"))

    def test_by_message(self):
        assert failure_hints(Exception("Forbidden"))

    def test_other(self):
        assert failure_hints(make_http_error(500, "Backend Error")) == []
        assert failure_hints(Exception("boom")) == []

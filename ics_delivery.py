"""
Batch delivery of converted events to Google Calendar.

Events are sent strictly one at a time, in file order. After each event is
confirmed the checkpoint is moved to its index, so an interrupted or failed
run can be restarted against the same file and picks up where it stopped.
"""

import sys
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from googleapiclient.errors import HttpError

from google_calendar import CalendarClient, error_message, error_status, is_sequence_error
from ics_checkpoint import CheckpointStore
from ics_converter import ConvertedEvent

PROGRESS_EVERY = 100
PROGRESS_SECONDS = 10


@dataclass
class DeliveryStats:
    """Per-run counters"""
    succeeded: int = 0
    skipped_duplicates: int = 0
    resumed: int = 0
    failed: int = 0
    imported_without_attendees: int = 0

    @property
    def processed(self) -> int:
        return self.succeeded + self.skipped_duplicates + self.failed


class DeliveryAborted(Exception):
    """A per-event failure stopped the run (skip-errors was off)"""

    def __init__(self, index: int, event: ConvertedEvent, error: Exception, stats: DeliveryStats):
        super().__init__(f"Import stopped at event {index + 1} ({event.summary}): {error}")
        self.index = index
        self.event = event
        self.error = error
        self.stats = stats


def failure_hints(error: Any) -> List[str]:
    """Likely causes for a failed import, by error category"""
    status = error_status(error)
    message = error_message(error)

    if status == 400 or 'Bad Request' in message:
        return [
            "Invalid date/time format",
            "Missing required fields",
            "Recurring event issues",
            "Invalid attendee email addresses",
        ]
    if status == 403 or 'Forbidden' in message:
        return [
            "Insufficient permissions on the target calendar",
            "Event already exists in a calendar you cannot modify",
            "Calendar API quota exceeded",
            "Event organizer restrictions",
        ]
    return []


def _is_not_participant_error(error: HttpError) -> bool:
    return (error.resp.status == 400
            and 'participantIsNeitherOrganizerNorAttendee' in error_message(error))


class BatchDelivery:
    """Delivers a sequence of ConvertedEvents with checkpoint/resume"""

    def __init__(self, client: CalendarClient, checkpoint: CheckpointStore,
                 check_duplicates: bool = False, skip_errors: bool = False):
        self.client = client
        self.checkpoint = checkpoint
        self.check_duplicates = check_duplicates
        self.skip_errors = skip_errors

    def deliver(self, events: Sequence[ConvertedEvent], resume_from: int = -1) -> DeliveryStats:
        """Deliver events in order, skipping indices <= resume_from.

        Raises DeliveryAborted on the first failure unless skip_errors is set.
        """
        stats = DeliveryStats()
        total = len(events)
        # Once an event fails the checkpoint stays put, so a rerun retries it
        checkpoint_frozen = False
        last_progress_time = time.time()

        for i, event in enumerate(events):
            if i <= resume_from:
                stats.resumed += 1
                continue

            try:
                imported = self._deliver_one(event, stats)
            except Exception as e:
                self._report_failure(event, e)
                if not self.skip_errors:
                    raise DeliveryAborted(i, event, e, stats) from e
                print("Skipping this event and continuing...", file=sys.stderr)
                stats.failed += 1
                checkpoint_frozen = True
                continue

            if imported:
                stats.succeeded += 1
            else:
                stats.skipped_duplicates += 1

            if not checkpoint_frozen:
                self.checkpoint.save(i)

            current_time = time.time()
            if (i + 1) % PROGRESS_EVERY == 0 or (current_time - last_progress_time) > PROGRESS_SECONDS:
                print(f"Progress: {i + 1}/{total} ({stats.succeeded} imported, "
                      f"{stats.skipped_duplicates} skipped, {stats.failed} errors)")
                sys.stdout.flush()
                last_progress_time = current_time

        if stats.failed == 0:
            self.checkpoint.clear()
        return stats

    def _deliver_one(self, event: ConvertedEvent, stats: DeliveryStats) -> bool:
        """Returns True when imported, False when skipped as a duplicate"""
        if self.check_duplicates and self.client.event_exists(event.ical_uid):
            print(f"Skipped (exists): {event.summary}")
            return False

        response, sent_body = self._import(event, stats)

        # Google does not always register the recurrence from the import alone.
        # The update repeats whatever body the import accepted.
        if event.has_recurrence and not event.is_recurrence_exception:
            self._update(response['id'], sent_body)

        self._report_success(event)
        return True

    def _import(self, event: ConvertedEvent, stats: DeliveryStats) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Import an event, returning Google's response and the body that was sent"""
        try:
            return self.client.import_event(event.body), event.body
        except HttpError as e:
            if not _is_not_participant_error(e):
                raise
        # The account is neither organizer nor attendee: import without people
        body = dict(event.body)
        body.pop('organizer', None)
        body.pop('attendees', None)
        response = self.client.import_event(body)
        stats.imported_without_attendees += 1
        return response, body

    def _update(self, event_id: str, body):
        try:
            return self.client.update_event(event_id, body)
        except Exception as e:
            if not is_sequence_error(e):
                raise
        return self.client.update_event_with_retry(event_id, body)

    @staticmethod
    def _report_success(event: ConvertedEvent) -> None:
        event_type = ''
        if event.has_recurrence:
            event_type = ' (RECURRING)'
        elif event.is_recurrence_exception:
            event_type = ' (EXCEPTION)'

        organizer = event.body.get('organizer') or {}
        print(f"Imported: {event.summary}{event_type}")
        print(f"   Organizer: {organizer.get('displayName', 'None')} "
              f"({organizer.get('email', 'No email')})")
        print(f"   Attendees: {len(event.body.get('attendees', []))}")
        if event.has_recurrence:
            print(f"   Recurrence: {event.body['recurrence'][0]}")
        if event.is_recurrence_exception:
            print(f"   Exception to recurring event: {event.ical_uid}")
            original = event.body.get('originalStartTime') or {}
            original_time: Optional[str] = original.get('dateTime') or original.get('date')
            if original_time:
                print(f"   Original time: {original_time}")

    @staticmethod
    def _report_failure(event: ConvertedEvent, error: Exception) -> None:
        print(f"Failed to import '{event.summary}': {error}", file=sys.stderr)
        hints = failure_hints(error)
        if hints:
            print("   This might be due to:", file=sys.stderr)
            for hint in hints:
                print(f"      - {hint}", file=sys.stderr)
        print(f"   iCalUID: {event.ical_uid}", file=sys.stderr)

"""
The prepare step: build identity tables, then write the JSONL file.

Every organizer/attendee in the ICS file has to resolve to a deliverable
email before import. Valid emails map to themselves; malformed emails and
bare names are handed to a prompt callable supplied by the caller (the CLI
asks on the console). The tables are then frozen into an IdentityResolver
and every event is converted.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ics_converter import EventConverter
from ics_identity import IdentityResolver, is_valid_email
from ics_interchange import jsonl_path_for, write_events
from ics_source import CalendarEvent, load_calendar

# prompt(kind, value) -> email, where kind is "email" or "name"
PromptFunc = Callable[[str, str], str]


@dataclass
class PrepareStats:
    emails_found: int = 0
    names_found: int = 0
    new_email_mappings: int = 0
    new_name_mappings: int = 0
    email_prompts: int = 0
    name_prompts: int = 0


def collect_identities(events: Iterable[CalendarEvent]) -> Tuple[List[str], List[str]]:
    """Unique organizer/attendee emails, and names of people with no email"""
    emails: Dict[str, None] = {}
    names: Dict[str, None] = {}

    for event in events:
        people = ([event.organizer] if event.organizer else []) + list(event.attendees)
        for person in people:
            if person.email:
                emails.setdefault(person.email)
            elif person.name:
                names.setdefault(person.name)

    return list(emails), list(names)


class MappingPreparer:
    """Fills in missing email-alias and name-to-email entries"""

    def __init__(self, email_aliases: Dict[str, str], name_to_email: Dict[str, str],
                 prompt: PromptFunc):
        self.email_aliases = email_aliases
        self.name_to_email = name_to_email
        self.prompt = prompt

    def prepare(self, emails: Iterable[str], names: Iterable[str]) -> PrepareStats:
        stats = PrepareStats()

        print("\nProcessing emails...")
        for email in emails:
            stats.emails_found += 1
            if email in self.email_aliases:
                print(f"  ✓ {email} -> {self.email_aliases[email]} (existing)")
                continue

            if is_valid_email(email):
                self.email_aliases[email] = email
                print(f"  ✓ {email} -> {email} (valid)")
            else:
                print(f"  Invalid email found: \"{email}\"")
                self.email_aliases[email] = self.prompt('email', email)
                print(f"  Mapped: {email} -> {self.email_aliases[email]}")
                stats.email_prompts += 1
            stats.new_email_mappings += 1

        names = list(names)
        if names:
            print("\nProcessing names without emails...")
        for name in names:
            stats.names_found += 1
            if name in self.name_to_email:
                print(f"  ✓ {name} -> {self.name_to_email[name]} (existing)")
                continue

            self.name_to_email[name] = self.prompt('name', name)
            print(f"  Mapped: {name} -> {self.name_to_email[name]}")
            stats.new_name_mappings += 1
            stats.name_prompts += 1

        return stats

    def resolver(self) -> IdentityResolver:
        return IdentityResolver(self.email_aliases, self.name_to_email)


def generate_events_jsonl(ics_path: str, resolver: IdentityResolver,
                          include_attendees: bool = True,
                          events: Optional[List[CalendarEvent]] = None) -> Tuple[int, int]:
    """Convert every event in an ICS file and write <ics_path>.jsonl.

    Returns (events written, events skipped as series instances).
    """
    if events is None:
        events = load_calendar(ics_path)

    print("Converting events to Google Calendar format...")
    converter = EventConverter(resolver, include_attendees=include_attendees)
    converted = converter.convert_all(events)

    jsonl_path = jsonl_path_for(ics_path)
    written = write_events(jsonl_path, converted)

    print(f"Generated {written} events in {jsonl_path}")
    if converter.stats['instances_skipped']:
        print(f"   {converter.stats['instances_skipped']} events skipped (recurring instances)")
    if converter.stats['organizers_dropped']:
        print(f"   {converter.stats['organizers_dropped']} organizers left out (no email mapping)")
    if converter.stats['attendees_dropped']:
        print(f"   {converter.stats['attendees_dropped']} attendees left out (no email mapping)")

    return written, converter.stats['instances_skipped']

#!/usr/bin/env python3
"""
ICS to Google Calendar Importer (resumable)

Imports ICS calendar files into Google Calendar in two steps:

    prepare   Scan the ICS file, build the email/name mappings (asking on the
              console for anything that cannot be resolved) and write the
              converted events to <file>.ics.jsonl
    process   Import the events from <file>.ics.jsonl, one at a time. Progress
              is checkpointed in <file>.ics.position, so a stopped run can
              simply be started again.

Features:
    - Imports attendees WITHOUT sending email notifications (uses import API)
    - Resolves malformed organizer/attendee emails and name-only entries
      through saved mappings (data/email_aliases.json, data/name_to_email.json)
    - Recurrence rules and recurrence exceptions
    - Windows/Outlook timezone names mapped to IANA
    - Optional duplicate detection by iCalUID
    - Resume after failure or interruption

Requirements:
    pip install google-auth google-auth-oauthlib google-auth-httplib2 google-api-python-client icalendar python-dateutil pytz

Usage:
    ics-import prepare <file.ics> [options]
    ics-import process <file.ics.jsonl> [options]
    ics-import auth
    ics-import calendars

Examples:
    ics-import prepare data/calendar.ics
    ics-import process data/calendar.ics.jsonl
    ics-import process data/calendar.ics.jsonl --calendar-id work@group.calendar.google.com
    ics-import process data/calendar.ics.jsonl --check-duplicates --skip-errors
"""

import argparse
import os
import sys
from typing import List, Optional

from google_calendar import CalendarClient, authenticate
from ics_checkpoint import CheckpointStore
from ics_delivery import BatchDelivery, DeliveryAborted
from ics_identity import is_valid_email, load_mapping, save_mapping
from ics_interchange import ics_path_for, read_events
from ics_prepare import MappingPreparer, collect_identities, generate_events_jsonl
from ics_source import ICSParseError, load_calendar

DATA_DIR = 'data'
EMAIL_ALIASES_FILE = 'email_aliases.json'
NAME_TO_EMAIL_FILE = 'name_to_email.json'
CREDENTIALS_FILE = 'credentials.json'
TOKEN_FILE = 'token.pickle'


def env_flag(name: str) -> bool:
    return os.environ.get(name, '').strip().lower() in ('1', 'true', 'yes', 'on')


def console_prompt(kind: str, value: str) -> str:
    """Ask on the console for the email to use for a malformed email or a bare name"""
    if kind == 'email':
        print("\nEMAIL ALIAS REQUIRED")
        print(f"Original: \"{value}\"")
        print("This email may be invalid. Please provide a valid email address.")
    else:
        print("\nNAME-TO-EMAIL MAPPING REQUIRED")
        print(f"Name: \"{value}\"")
        print("This person has no email address. Please provide one.")

    while True:
        email = input(f"Enter email for \"{value}\": ").strip()
        if not email:
            print("Email cannot be empty")
        elif is_valid_email(email):
            return email
        else:
            print("Invalid email format, please try again")


def run_prepare(args) -> None:
    ics_path = args.input_file
    if not ics_path.lower().endswith('.ics'):
        print("Error: prepare requires an ICS file (.ics extension)", file=sys.stderr)
        sys.exit(1)

    aliases_path = os.path.join(args.data_dir, EMAIL_ALIASES_FILE)
    names_path = os.path.join(args.data_dir, NAME_TO_EMAIL_FILE)

    print("=" * 60)
    print("PREPARE: Building email and name mappings")
    print("=" * 60)

    events = load_calendar(ics_path)
    emails, names = collect_identities(events)
    print(f"Found {len(emails)} unique emails, {len(names)} names without email")

    preparer = MappingPreparer(load_mapping(aliases_path), load_mapping(names_path),
                               prompt=console_prompt)
    stats = preparer.prepare(emails, names)

    if stats.new_email_mappings:
        save_mapping(aliases_path, preparer.email_aliases)
        print(f"Saved {len(preparer.email_aliases)} email aliases to {aliases_path}")
    if stats.new_name_mappings:
        save_mapping(names_path, preparer.name_to_email)
        print(f"Saved {len(preparer.name_to_email)} name-to-email mappings to {names_path}")

    print()
    generate_events_jsonl(ics_path, preparer.resolver(),
                          include_attendees=not args.no_attendees, events=events)

    print("-" * 60)
    print(f"{stats.emails_found} emails processed "
          f"({stats.new_email_mappings} new mappings, {stats.email_prompts} prompted)")
    print(f"{stats.names_found} names processed "
          f"({stats.new_name_mappings} new mappings, {stats.name_prompts} prompted)")
    print(f"\nNow run: ics-import process {ics_path}.jsonl")


def build_client(args) -> CalendarClient:
    print("\nAuthenticating with Google...")
    sys.stdout.flush()
    service = authenticate(args.credentials, args.token or os.path.join(args.data_dir, TOKEN_FILE))
    print("Connected to Google Calendar API")
    sys.stdout.flush()
    return CalendarClient(service, calendar_id=getattr(args, 'calendar_id', 'primary'))


def run_process(args) -> None:
    jsonl_path = args.input_file
    if not jsonl_path.lower().endswith('.jsonl'):
        print("Error: process requires a JSONL file (.jsonl extension)", file=sys.stderr)
        print("Run prepare first to generate the JSONL file from your ICS file")
        sys.exit(1)

    skip_errors = args.skip_errors or env_flag('SKIP_ERRORS')

    print("=" * 60)
    print("PROCESS: Importing to Google Calendar")
    print("=" * 60)
    print(f"Target calendar: {args.calendar_id}")
    print(f"Duplicate checking: {'ENABLED' if args.check_duplicates else 'DISABLED (faster imports)'}")
    print(f"Skip errors: {'ENABLED' if skip_errors else 'DISABLED'}")

    events = read_events(jsonl_path)
    print(f"Found {len(events)} event(s) to process")

    client = build_client(args)
    checkpoint = CheckpointStore(ics_path_for(jsonl_path))
    delivery = BatchDelivery(client, checkpoint,
                             check_duplicates=args.check_duplicates,
                             skip_errors=skip_errors)

    print("Using import API - NO email notifications will be sent to attendees")
    print("-" * 60)

    try:
        stats = delivery.deliver(events, resume_from=checkpoint.load())
    except DeliveryAborted as e:
        print(f"\nImport stopped: {e}", file=sys.stderr)
        print(f"{e.stats.succeeded} events imported before the failure.", file=sys.stderr)
        print("Run the same command again to resume, or add --skip-errors "
              "(or SKIP_ERRORS=1) to skip failed events.", file=sys.stderr)
        sys.exit(1)

    print("\n" + "=" * 60)
    print("IMPORT SUMMARY")
    print("=" * 60)
    print(f"Events processed:        {stats.processed}")
    print(f"Successfully imported:   {stats.succeeded}")
    if stats.imported_without_attendees:
        print(f"  (of which {stats.imported_without_attendees} imported without attendees"
              " - you weren't organizer/attendee)")
    if stats.resumed:
        print(f"Already processed:       {stats.resumed}")
    print(f"Skipped (duplicates):    {stats.skipped_duplicates}")
    print(f"Errors:                  {stats.failed}")
    print("=" * 60)
    if stats.failed:
        print("\nSome events failed. Run the same command again to retry them.")
    print("\nNOTE: No email notifications were sent to any attendees.")


def run_auth(args) -> None:
    build_client(args)
    print("Authorization complete.")


def run_calendars(args) -> None:
    client = build_client(args)
    print("\nAvailable calendars:")
    print("-" * 60)
    for cal in client.list_calendars():
        primary = " (PRIMARY)" if cal['primary'] else ""
        print(f"  {cal['summary']}{primary}")
        print(f"    ID: {cal['id']}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='ics-import',
        description='Import ICS calendar files to Google Calendar (resumable, no notifications)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s prepare data/calendar.ics
  %(prog)s process data/calendar.ics.jsonl
  %(prog)s process data/calendar.ics.jsonl --calendar-id work@group.calendar.google.com
  %(prog)s process data/calendar.ics.jsonl --check-duplicates --skip-errors
  %(prog)s calendars

Notes:
  - Uses Google Calendar's import API, so NO notifications are sent to attendees
  - A stopped import resumes from <file>.ics.position when run again
  - SKIP_ERRORS=1 in the environment is the same as --skip-errors
        """
    )
    parser.add_argument('--data-dir', default=DATA_DIR,
                        help=f'Directory for mappings and the saved token (default: {DATA_DIR})')
    parser.add_argument('--credentials', default=CREDENTIALS_FILE,
                        help=f'Path to Google OAuth credentials file (default: {CREDENTIALS_FILE})')
    parser.add_argument('--token', default=None,
                        help=f'Path to the saved OAuth token (default: <data-dir>/{TOKEN_FILE})')

    subparsers = parser.add_subparsers(dest='command', metavar='command')

    prepare = subparsers.add_parser('prepare', help='Scan an ICS file and build email/name mappings')
    prepare.add_argument('input_file', help='Path to the ICS file')
    prepare.add_argument('--no-attendees', action='store_true',
                         help='Do not import attendees')
    prepare.set_defaults(func=run_prepare)

    process = subparsers.add_parser('process', help='Import events from a JSONL file')
    process.add_argument('input_file', help='Path to the JSONL file written by prepare')
    process.add_argument('--calendar-id', '-c', default='primary',
                         help='Target Google Calendar ID (default: primary)')
    process.add_argument('--check-duplicates', action='store_true',
                         help='Skip events whose iCalUID already exists (one extra request per event)')
    process.add_argument('--skip-errors', action='store_true',
                         help='Skip failed events and continue')
    process.set_defaults(func=run_process)

    auth = subparsers.add_parser('auth', help='Authorize with Google and save the token')
    auth.set_defaults(func=run_auth)

    calendars = subparsers.add_parser('calendars', help='List available Google Calendars')
    calendars.set_defaults(func=run_calendars)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    input_file = getattr(args, 'input_file', None)
    if input_file and not os.path.exists(input_file):
        print(f"Error: File not found: {input_file}", file=sys.stderr)
        sys.exit(1)

    try:
        args.func(args)
    except (FileNotFoundError, ICSParseError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print("\nDone!")


if __name__ == '__main__':
    main()

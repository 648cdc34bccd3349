"""
The JSONL file passed from the prepare step to the process step.

One converted event per line: the Google event body with an extra
"_metadata" object (isRecurrenceException, hasRecurrence, originalICalUID,
originalSummary). The file sits next to the ICS file as <name>.ics.jsonl.
"""

import json
from pathlib import Path
from typing import Iterable, List

from ics_converter import ConvertedEvent

JSONL_SUFFIX = '.jsonl'


def jsonl_path_for(ics_path: str) -> str:
    return f"{ics_path}{JSONL_SUFFIX}"


def ics_path_for(jsonl_path: str) -> str:
    """The ICS path a JSONL file was generated from (checkpoints are keyed on it)"""
    if jsonl_path.endswith(JSONL_SUFFIX):
        return jsonl_path[:-len(JSONL_SUFFIX)]
    return jsonl_path


def to_json_line(event: ConvertedEvent) -> str:
    return json.dumps(event.to_record(), ensure_ascii=False)


def from_json_line(line: str) -> ConvertedEvent:
    return ConvertedEvent.from_record(json.loads(line))


def write_events(path, events: Iterable[ConvertedEvent]) -> int:
    """Write events as JSONL, returning the number of lines written"""
    count = 0
    with open(path, 'w', encoding='utf-8') as f:
        for event in events:
            f.write(to_json_line(event))
            f.write('\n')
            count += 1
    return count


def read_events(path) -> List[ConvertedEvent]:
    """Read a JSONL file. Blank lines are ignored; a bad line raises ValueError."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"JSONL file not found: {path}")

    events = []
    with open(path, 'r', encoding='utf-8') as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                events.append(from_json_line(line))
            except ValueError as e:
                raise ValueError(f"{path}:{line_number}: invalid event record ({e})") from e
    return events

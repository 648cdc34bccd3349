"""
Identity resolution for organizers and attendees.

Two lookup tables are built during the prepare step:
    - email aliases:  raw email (possibly malformed) -> deliverable email
    - name to email:  display name (CN) -> deliverable email

During conversion the tables are read-only. IdentityResolver wraps them and
answers a single question: which email address, if any, should this
organizer/attendee be imported as?
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional

EMAIL_REGEX = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
MAILTO_PREFIX = re.compile(r'^mailto:', re.IGNORECASE)


def is_valid_email(email: Optional[str]) -> bool:
    """Check basic email syntax: local@domain.tld with no whitespace"""
    if not email:
        return False
    return bool(EMAIL_REGEX.match(email))


def extract_email(value) -> Optional[str]:
    """Strip a mailto: prefix from a calendar address. Empty results become None."""
    if value is None:
        return None
    email = MAILTO_PREFIX.sub('', str(value).strip()).strip()
    return email or None


@dataclass(frozen=True)
class ResolvedIdentity:
    email: str
    display_name: str

    def to_google(self) -> Dict[str, str]:
        return {'email': self.email, 'displayName': self.display_name}


class IdentityResolver:
    """Resolves raw email/name pairs against the two lookup tables"""

    def __init__(self, email_aliases: Optional[Mapping[str, str]] = None,
                 name_to_email: Optional[Mapping[str, str]] = None):
        self.email_aliases = MappingProxyType(dict(email_aliases or {}))
        self.name_to_email = MappingProxyType(dict(name_to_email or {}))

    def resolve_email(self, raw_email: Optional[str] = None,
                      raw_name: Optional[str] = None) -> Optional[str]:
        if raw_email:
            alias = self.email_aliases.get(raw_email)
            if alias:
                return alias
            if is_valid_email(raw_email):
                return raw_email
            return None

        if raw_name:
            return self.name_to_email.get(raw_name) or None

        return None

    def resolve(self, raw_email: Optional[str] = None,
                raw_name: Optional[str] = None) -> Optional[ResolvedIdentity]:
        """Resolve an identity, or return None if it cannot be delivered to.

        A valid email resolves to its alias or to itself. An invalid email
        needs an alias. A bare name needs a name-table entry.
        """
        email = self.resolve_email(raw_email, raw_name)
        if not email:
            return None
        return ResolvedIdentity(email=email, display_name=raw_name or email)


def load_mapping(path) -> Dict[str, str]:
    """Load a JSON string->string mapping. Missing or unreadable files give {}"""
    path = Path(path)
    if not path.exists():
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        print(f"Warning: Could not load {path} ({e}), starting fresh")
        return {}

    if not isinstance(data, dict):
        print(f"Warning: {path} does not contain a JSON object, starting fresh")
        return {}

    return {str(k): str(v) for k, v in data.items()}


def save_mapping(path, mapping: Mapping[str, str]) -> None:
    """Write a mapping as JSON, sorted by key for stable diffs"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    ordered = {key: mapping[key] for key in sorted(mapping)}
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(ordered, f, indent=2, ensure_ascii=False)
        f.write('\n')

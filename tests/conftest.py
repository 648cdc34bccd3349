"""Shared fixtures for the importer tests."""

import sys
from pathlib import Path

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from helpers import FakeService  # noqa: E402
from ics_identity import IdentityResolver  # noqa: E402

# Path to test data
TEST_DATA_DIR = Path(__file__).parent / "test_data"


@pytest.fixture
def sample_ics_path():
    return TEST_DATA_DIR / "sample.ics"


@pytest.fixture
def resolver():
    """Identity tables matching the people in sample.ics"""
    email_aliases = {
        "john.doe@example.com": "john.doe@example.com",
        "jane.smith@example.com": "jane.smith@example.com",
        "invalid_email_format": "fixed@example.com",
        "old.address@example.com": "new.address@example.com",
    }
    name_to_email = {
        "No Email Person": "noemail@example.com",
    }
    return IdentityResolver(email_aliases, name_to_email)


@pytest.fixture
def fake_service():
    return FakeService()

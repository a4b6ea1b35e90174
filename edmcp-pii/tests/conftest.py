"""Pytest configuration and fixtures for edmcp-pii tests."""

import sys
from pathlib import Path

import pytest
from edmcp_core import DatabaseManager

from edmcp_pii.core import PIIContext, RosterEntry


class FakeClock:
    """Monotonic clock the tests can move forward by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def sample_roster():
    """Roster for course 56569. These are fake people."""
    return [
        RosterEntry(
            identity_id=12345,
            display_name="Jackson Smith",
            student_id="C00123456",
            email="jackson.smith@louisiana.edu",
            role="student",
            owner_id="test-owner",
            course_id=56569,
        ),
        RosterEntry(
            identity_id=12346,
            display_name="Mary Johnson",
            student_id="C00654321",
            email="mary.johnson@louisiana.edu",
            role="student",
            owner_id="test-owner",
            course_id=56569,
        ),
        RosterEntry(
            identity_id=99999,
            display_name="Arun Lakhotia",
            student_id=None,
            email="arun.lakhotia@louisiana.edu",
            role="editingteacher",
            owner_id="test-owner",
            course_id=56569,
        ),
        RosterEntry(
            identity_id=21011,
            display_name="Matheus John Nery",
            student_id="C00789012",
            email="matheus.nery@louisiana.edu",
            role="student",
            owner_id="test-owner",
            course_id=56569,
        ),
    ]


@pytest.fixture
def ambiguous_roster():
    """Two John Smiths with different middle names, plus one unique student."""
    return [
        RosterEntry(
            identity_id=30001,
            display_name="John Michael Smith",
            student_id="C00111111",
            email="john.m.smith@louisiana.edu",
        ),
        RosterEntry(
            identity_id=30002,
            display_name="John David Smith",
            student_id="C00222222",
            email="john.d.smith@louisiana.edu",
        ),
        RosterEntry(
            identity_id=30003,
            display_name="Sarah Jane Connor",
            student_id="C00333333",
            email="sarah.connor@louisiana.edu",
        ),
    ]


@pytest.fixture
def raw_participants_output():
    """A list_participants result as scraped from the LMS."""
    return {
        "page": 0,
        "perpage": 100,
        "participants": [
            {
                "id": 12345,
                "name": "Jackson Smith",
                "email": "jackson.smith@louisiana.edu",
                "role": "Student",
                "lastAccess": "2026-01-25 10:00:00",
            },
            {
                "id": 12346,
                "name": "Mary Johnson",
                "email": "mary.johnson@louisiana.edu",
                "role": "Student",
                "lastAccess": "2026-01-24 15:30:00",
            },
            {
                "id": 99999,
                "name": "Arun Lakhotia",
                "email": "arun.lakhotia@louisiana.edu",
                "role": "Teacher",
                "lastAccess": "2026-01-25 09:00:00",
            },
        ],
    }


@pytest.fixture
def test_db_manager(tmp_path):
    """Create a DatabaseManager with a temporary database."""
    manager = DatabaseManager(tmp_path / "test_pii.db")
    yield manager
    manager.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def context(test_db_manager, clock):
    """PIIContext over the temporary database with a hand-driven clock."""
    return PIIContext(db_manager=test_db_manager, ttl_seconds=300, clock=clock)


@pytest.fixture
def server_module(tmp_path, monkeypatch):
    """Import server.py with its lazy state pointed at a temp database."""
    monkeypatch.delenv("EDMCP_PII_ROSTER_TTL_SECONDS", raising=False)
    monkeypatch.delenv("EDMCP_PII_EMAIL_DOMAIN", raising=False)
    sys.path.insert(0, str(Path(__file__).parent.parent))

    import server

    server._db_manager = None
    server._context = None
    server.DB_PATH = tmp_path / "test_server.db"

    yield server

    if server._db_manager is not None:
        server._db_manager.close()
    server._db_manager = None
    server._context = None

"""
Pytest configuration and shared fixtures.

Test Categories:
- unit: Fast tests against a throwaway SQLite file
- api: Tests driving the FastAPI app through TestClient

Run categories:
- pytest -m unit
- pytest -m api
- pytest
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# The module-level app in main.py opens the configured database on import,
# so point it somewhere disposable before anything imports config.
_fd, _SESSION_DB = tempfile.mkstemp(suffix=".db")
os.close(_fd)
os.environ["BITESPEED_DB_PATH"] = _SESSION_DB

from chain_manager import ChainManager  # noqa: E402
from contact_store import ContactStore, LinkPrecedence  # noqa: E402
from integrity_guard import IntegrityGuard  # noqa: E402
from resolver import Resolver  # noqa: E402

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "api: Tests through the HTTP layer")


def pytest_unconfigure(config):
    if os.path.exists(_SESSION_DB):
        os.unlink(_SESSION_DB)


@pytest.fixture
def temp_db():
    """Create a temporary database file for testing."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield Path(path)
    if os.path.exists(path):
        os.unlink(path)


@pytest.fixture
def store(temp_db):
    """Create a ContactStore with a temporary database."""
    return ContactStore(db_path=temp_db)


@pytest.fixture
def chains(store):
    return ChainManager(store)


@pytest.fixture
def resolver(store):
    return Resolver(store)


@pytest.fixture
def guard(store):
    return IntegrityGuard(store)


@pytest.fixture
def add_contact(store):
    """
    Insert a contact directly, bypassing resolution.

    `minutes` places createdAt relative to a fixed 2024 origin, so seeded
    rows are always older than anything identify creates.
    """
    def _add(email=None, phone=None, linked_id=None, precedence="primary", minutes=0):
        return store.create_contact(
            email=email,
            phone_number=phone,
            linked_id=linked_id,
            link_precedence=LinkPrecedence(precedence),
            created_at=T0 + timedelta(minutes=minutes),
        )
    return _add

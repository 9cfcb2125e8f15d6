"""Global test fixtures for the Web of Trust test suite."""

from __future__ import annotations

import os
from contextlib import contextmanager
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

from weboftrust.core.clock import ManualClock
from weboftrust.core.config import clear_config_cache
from weboftrust.graph.persistence import MemoryBackend
from weboftrust.graph.store import GraphStore
from weboftrust.scoring.engine import ScoreEngine

from helpers import FakeNetwork, make_insert_uri, make_uri

# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all WOT_ environment variables."""
    for key in list(os.environ.keys()):
        if key.startswith("WOT_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture(autouse=True)
def reset_config():
    """Every test starts from a fresh config singleton."""
    clear_config_cache()
    yield
    clear_config_cache()


# ============================================================================
# Database Mocking Fixtures (psycopg2)
# ============================================================================


@pytest.fixture
def mock_get_cursor():
    """Patch core.db.get_cursor with a contextmanager yielding a MagicMock cursor."""
    mock_cursor = MagicMock()
    mock_cursor.fetchall.return_value = []
    mock_cursor.fetchone.return_value = None

    @contextmanager
    def fake_get_cursor():
        yield mock_cursor

    with patch("weboftrust.core.db.get_cursor", fake_get_cursor):
        yield mock_cursor


# ============================================================================
# Graph Fixtures
# ============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2026, 1, 1, tzinfo=UTC))


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend, clock) -> GraphStore:
    return GraphStore(backend=backend, engine=ScoreEngine(), clock=clock)


@pytest.fixture
def own_factory(store):
    """Create own identities by routing key."""

    def _create(routing: str, nickname: str | None = None, **kwargs):
        return store.create_own_identity(
            make_insert_uri(routing),
            make_uri(routing),
            nickname or routing,
            **kwargs,
        )

    return _create


@pytest.fixture
def identity_factory(store):
    """Create remote identities by routing key."""

    def _create(routing: str, nickname: str | None = None):
        return store.create_identity(make_uri(routing), nickname)

    return _create


# ============================================================================
# Network Fixtures
# ============================================================================


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()

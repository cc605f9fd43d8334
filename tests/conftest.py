"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from studyset.audio.audio_cache import AudioCache, SqlAudioStore  # noqa: E402
from studyset.delivery.session_store import SessionStore  # noqa: E402
from studyset.delivery.state_store import StateStore  # noqa: E402

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (local stores in tmp_path)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FakeClock:
    """Settable time source."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def state_store(tmp_path):
    """StateStore on a throwaway database."""
    store = StateStore(tmp_path / "state.db")
    yield store
    store.close()


@pytest.fixture
def session_store(tmp_path):
    return SessionStore(tmp_path / "learn_session.json")


@pytest.fixture
def audio_store(tmp_path):
    return SqlAudioStore.from_url(f"sqlite:///{tmp_path / 'audio_cache.db'}")


@pytest.fixture
def audio_cache(audio_store, clock):
    return AudioCache(audio_store, max_size_mb=1, clock=clock)


@pytest.fixture
def sample_set(state_store):
    """A set with five cards: alpha..epsilon."""
    study_set = state_store.create_set("Greek letters", now=FIXED_NOW)
    for term, definition in [
        ("alpha", "first letter"),
        ("beta", "second letter"),
        ("gamma", "third letter"),
        ("delta", "fourth letter"),
        ("epsilon", "fifth letter"),
    ]:
        state_store.add_card(study_set.id, term, definition, now=FIXED_NOW)
    return study_set

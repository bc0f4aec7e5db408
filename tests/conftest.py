"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from leetanki.db.backends import MemoryBackend  # noqa: E402
from leetanki.review.scheduler import SM2Scheduler  # noqa: E402
from leetanki.review.selector import DueSetSelector  # noqa: E402
from leetanki.review.state_store import ReviewRecordStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite on disk)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    """A fixed 'current time' for deterministic scheduling."""
    return datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def scheduler():
    return SM2Scheduler()


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend, scheduler):
    return ReviewRecordStore(backend, scheduler)


@pytest.fixture
def selector(store):
    return DueSetSelector(store, default_limit=20)


@pytest.fixture
def make_event(now):
    """Build a raw completion event the way the sync source sends it."""

    def _make(item_id, title=None, difficulty="Medium", tags=("array",), days_ago=0):
        return {
            "itemId": item_id,
            "metadata": {
                "title": title or item_id.replace("-", " ").title(),
                "difficulty": difficulty,
                "tags": list(tags),
            },
            "acceptedAt": (now - timedelta(days=days_ago)).isoformat(),
        }

    return _make


@pytest.fixture
def sample_batch(make_event):
    """Provide a small batch of completion events."""
    return [
        make_event("two-sum", difficulty="Easy", tags=("array", "hash-table"), days_ago=5),
        make_event("lru-cache", difficulty="Medium", tags=("design",), days_ago=3),
        make_event("median-of-two-sorted-arrays", difficulty="Hard", tags=("binary-search",), days_ago=1),
    ]

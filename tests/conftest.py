"""
Pytest configuration and shared fixtures for followgraph tests.

Provides common setup, teardown, and fixtures used across unit tests:
temporary cache directories, fake clocks, and mocked HTTP sessions.
"""
import random
import shutil
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from followgraph.network.cache import CacheStore
from followgraph.network.client import BiliClient, RateLimiter
from followgraph.network.retry import RetryPolicy
from tests.fixtures.mock_data import FakeClock, SleepRecorder


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that's cleaned up after tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path)


@pytest.fixture
def fake_clock():
    """Provide a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def sleep_recorder():
    """Provide a non-blocking sleep that records requested delays."""
    return SleepRecorder()


@pytest.fixture
def cache_store(temp_dir, fake_clock):
    """Provide a CacheStore in a temp directory driven by the fake clock."""
    return CacheStore(str(temp_dir / "cache"), clock=fake_clock)


@pytest.fixture
def mock_session():
    """Provide a requests.Session double; configure session.get per test."""
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def client(mock_session, sleep_recorder):
    """Provide a BiliClient with no rate-limit spacing and recorded backoff sleeps."""
    return BiliClient(
        session=mock_session,
        rate_limiter=RateLimiter(0),
        retry_policy=RetryPolicy(rng=random.Random(1234)),
        sleep=sleep_recorder,
    )


# Custom markers for different test categories
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, isolated)"
    )
    config.addinivalue_line(
        "markers", "concurrency: marks tests that exercise worker threads"
    )
    config.addinivalue_line(
        "markers", "api: marks tests that mock API interactions"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add automatic markers based on location."""
    for item in items:
        # Add unit marker to tests in unit directory
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

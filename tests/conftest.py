"""
Pytest fixtures for test infrastructure.

This module is automatically loaded by pytest and provides shared fixtures.
For skip markers, fakes and factories, see test_helpers.py.
"""

import pytest

from pulsewatch.archivist.memory_store import create_memory_stores

from tests.test_helpers import (
    FakeMailer,
    FakePublisher,
    FixedClock,
    RecordingDispatcher,
)


# =============================================================================
# Shared fixtures
# =============================================================================
@pytest.fixture
def stores():
    """Fresh in-memory repositories."""
    return create_memory_stores()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def sample_article_text():
    """Sample scraped text mentioning the monitored keywords."""
    return """
    Acme Corp Recalls Widgets After Safety Complaints

    SPRINGFIELD, Jan 14, 2026 - Acme Corp said today it is recalling two
    million widgets after regulators opened an investigation into reports
    of overheating. Shares fell 18% in early trading.
    """

"""Shared test fixtures for meetgrid tests.

This module provides common fixtures used across all test modules:
- A reference week (Sunday 2024-01-07) and a meeting factory
- In-memory store, collection cache and mutator registry wired together
- Fast commit timing so debounce tests stay quick

Usage:
    async def test_something(registry, meeting_a):
        mutator = registry.open(meeting_a)
        ...
"""

from collections.abc import Callable
from datetime import datetime, time, timedelta
from pathlib import Path

import pytest

from meetgrid.calendar.coordinates import CoordinateMapper
from meetgrid.calendar.models import Meeting, Timeslot
from meetgrid.config_models import CommitConfig, SyncConfig
from meetgrid.logging_config import setup_logging
from meetgrid.sync.cache import CollectionCache
from meetgrid.sync.mutator import MutatorRegistry
from meetgrid.sync.persistence import InMemoryMeetingStore


# ─────────────────────────────────────────────────────────────────────────────
# Path / Time Constants
# ─────────────────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).parent.parent

# Sunday; day index 0 of the displayed week.
WEEK_START = datetime(2024, 1, 7)
TRACK_WIDTH = 82.0


def at(day: int, clock: str) -> datetime:
    """Datetime for weekday ``day`` (0 = Sunday) of the reference week."""
    hours, minutes = (int(part) for part in clock.split(":"))
    return datetime.combine(WEEK_START.date() + timedelta(days=day), time(hours, minutes))


def make_meeting(meeting_id: str, day: int, start: str, end: str, **fields) -> Meeting:
    return Meeting(
        id=meeting_id,
        time=Timeslot.create(at(day, start), at(day, end), id=f"ts-{meeting_id}"),
        **fields,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Logging
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Route structlog through stdlib logging (stderr) for the whole session."""
    setup_logging(level="DEBUG")


# ─────────────────────────────────────────────────────────────────────────────
# Model Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def week_start() -> datetime:
    return WEEK_START


@pytest.fixture
def at_time() -> Callable[[int, str], datetime]:
    return at


@pytest.fixture
def meeting_factory() -> Callable[..., Meeting]:
    return make_meeting


@pytest.fixture
def meeting_a() -> Meeting:
    """Monday 09:00-10:00."""
    return make_meeting("meeting-a", 1, "09:00", "10:00", subjects=["math"])


@pytest.fixture
def meeting_b() -> Meeting:
    """Monday 09:30-10:30, overlaps meeting_a."""
    return make_meeting("meeting-b", 1, "09:30", "10:30")


@pytest.fixture
def meeting_c() -> Meeting:
    """Monday 11:00-11:30, separate group."""
    return make_meeting("meeting-c", 1, "11:00", "11:30")


@pytest.fixture
def mapper() -> CoordinateMapper:
    return CoordinateMapper()


# ─────────────────────────────────────────────────────────────────────────────
# Sync Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def sync_config() -> SyncConfig:
    """Short debounce so timer-driven commits fire quickly."""
    return SyncConfig(commit=CommitConfig(debounce_ms=50))


@pytest.fixture
def store(meeting_a, meeting_b) -> InMemoryMeetingStore:
    return InMemoryMeetingStore([meeting_a, meeting_b])


@pytest.fixture
def cache(store, meeting_a, meeting_b) -> CollectionCache:
    return CollectionCache(
        WEEK_START,
        WEEK_START + timedelta(days=7),
        fetcher=store.list,
        meetings=[meeting_a, meeting_b],
    )


@pytest.fixture
def registry(store, cache, sync_config) -> MutatorRegistry:
    return MutatorRegistry(store, cache, sync_config)

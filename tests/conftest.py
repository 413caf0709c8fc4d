"""Shared fixtures for engine and storage tests."""

import os
from datetime import datetime, timedelta, timezone

import pytest

from listing_guard.config.loader import PricingDefaults, Settings, StorageSettings
from listing_guard.core.engine import create_engine
from listing_guard.storage.directory import SqliteListingStore, SqliteUserStore
from listing_guard.storage.repository import initialize_schema

# Mid-month, well after the default launch end date (2025-08-26).
NOW = datetime(2026, 10, 15, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, moment: datetime = NOW):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, **kwargs) -> None:
        self.moment = self.moment + timedelta(**kwargs)


@pytest.fixture
def db_path(tmp_path):
    path = os.path.join(str(tmp_path), "test.db")
    initialize_schema(path)
    return path


@pytest.fixture
def clock():
    return FrozenClock()


def make_settings(db_path: str, **pricing) -> Settings:
    return Settings(
        storage=StorageSettings(db_path=db_path),
        pricing=PricingDefaults(**pricing),
    )


@pytest.fixture
def make_engine(db_path, clock):
    """Build an engine over the test database with overridden pricing defaults."""
    def _make(**pricing):
        return create_engine(make_settings(db_path, **pricing), clock=clock)
    return _make


@pytest.fixture
def engine(make_engine):
    """Engine whose launch phase has already ended (quotas apply)."""
    return make_engine()


@pytest.fixture
def launch_engine(make_engine, clock):
    """Engine whose launch phase ends tomorrow."""
    return make_engine(launch_phase_end_date=clock() + timedelta(days=1))


@pytest.fixture
def users(db_path):
    return SqliteUserStore(db_path)


@pytest.fixture
def listings(db_path):
    return SqliteListingStore(db_path)

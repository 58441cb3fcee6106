import os
import sys
from datetime import date, datetime

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'backend')))

from config import StatsConfig
from models import StudySession, StudyStats, UserCreate
from notifications import NotificationDispatcher
from sessions import StudyService
from store import MemoryStatsStore


@pytest.fixture
def zero_stats():
    return StudyStats()


@pytest.fixture
def store():
    return MemoryStatsStore()


@pytest.fixture
def make_service(store):
    """Build a service over the memory store; stats config can be overridden."""
    def _make(**config):
        dispatcher = NotificationDispatcher(store)
        return StudyService(store, dispatcher, StatsConfig(**config))
    return _make


@pytest.fixture
def new_user():
    return UserCreate(user_id="u1", display_name="Ada")


@pytest.fixture
def make_session():
    """Stored-session factory for analytics tests."""
    def _make(subject="Math", minutes=60, day=date(2024, 1, 15), start_hour=None,
              completed=True, session_id=1):
        return StudySession(
            id=session_id,
            user_id="u1",
            subject=subject,
            duration_minutes=minutes,
            date=day,
            completed=completed,
            start_time=datetime(day.year, day.month, day.day, start_hour) if start_hour is not None else None,
            created_at=datetime(day.year, day.month, day.day, 23, 0),
        )
    return _make

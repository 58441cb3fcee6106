"""
Tests for PostgreSQL row conversion

Queries need a live server and are not exercised here.
"""

import json
from datetime import date, datetime, timedelta, timezone

from database import (
    SCHEMA,
    PostgresStatsStore,
    _notification_from_row,
    _profile_from_rows,
    _session_from_row,
)
from models import NotificationType, SessionCompletion, SessionType


USER_ROW = {
    "user_id": "u1",
    "display_name": "Ada",
    "settings": json.dumps({"weekly_hours_target": 10}),
    "total_hours": 2.5,
    "total_sessions": 2,
    "current_streak": 2,
    "longest_streak": 2,
    "weekly_hours": [0.0, 1.5, 1.0, 0.0, 0.0, 0.0, 0.0],
    "last_study_date": date(2024, 1, 16),
    "today_hours": 1.0,
    "created_at": datetime(2024, 1, 1, 8, 0),
}


class TestRowConversion:
    """asyncpg records become model instances."""

    def test_profile(self):
        achievements = [{"achievement_id": "first_session", "earned_at": datetime(2024, 1, 15, 9, 0)}]

        profile = _profile_from_rows(USER_ROW, achievements)

        assert profile.settings.weekly_hours_target == 10
        assert profile.stats.weekly_total == 2.5
        assert profile.stats.last_study_date == date(2024, 1, 16)
        assert profile.earned_ids == ["first_session"]

    def test_profile_with_decoded_settings(self):
        row = {**USER_ROW, "settings": {"notifications_enabled": False}}
        assert not _profile_from_rows(row, []).settings.notifications_enabled

    def test_session(self):
        row = {
            "id": 7,
            "user_id": "u1",
            "subject": "Math",
            "duration_minutes": 45,
            "session_date": date(2024, 1, 15),
            "completed": True,
            "start_time": datetime(2024, 1, 15, 9, 0),
            "end_time": datetime(2024, 1, 15, 9, 45),
            "notes": "",
            "session_type": "practice",
            "tags": ["algebra"],
            "created_at": datetime(2024, 1, 15, 9, 45),
        }

        session = _session_from_row(row)

        assert session.date == date(2024, 1, 15)
        assert session.session_type == SessionType.PRACTICE
        assert session.tags == ["algebra"]

    def test_notification(self):
        row = {
            "id": 3,
            "user_id": "u1",
            "type": "streak",
            "title": "3 Day Streak! 🔥",
            "body": "Amazing! You've studied for 3 days in a row!",
            "data": '{"streak_count": 3}',
            "read": False,
            "created_at": datetime(2024, 1, 15, 9, 0),
        }

        notification = _notification_from_row(row)

        assert notification.type == NotificationType.STREAK
        assert notification.data == {"streak_count": 3}


class TestSchema:
    def test_one_achievement_per_user(self):
        achievements = next(s for s in SCHEMA if "user_achievements" in s)
        assert "UNIQUE(user_id, achievement_id)" in achievements

    def test_store_name(self):
        assert PostgresStatsStore("postgresql://localhost/test").name == "postgres"


class TestTimestamps:
    """Session times reach TIMESTAMP columns as naive server-local values."""

    def test_aware_input_is_made_naive(self):
        session = SessionCompletion(
            subject="Math",
            duration_minutes=45,
            start_time="2024-01-15T08:00:00Z",
            end_time="2024-01-15T08:45:00+00:00",
        )
        expected = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)

        assert session.start_time.tzinfo is None
        assert session.end_time.tzinfo is None
        assert session.start_time == expected
        assert session.end_time - session.start_time == timedelta(minutes=45)

    def test_naive_input_is_unchanged(self):
        session = SessionCompletion(subject="Math", duration_minutes=45, start_time="2024-01-15T08:00:00")
        assert session.start_time == datetime(2024, 1, 15, 8, 0)

    def test_row_with_aware_times(self):
        row = {
            "id": 1,
            "user_id": "u1",
            "subject": "Math",
            "duration_minutes": 30,
            "session_date": date(2024, 1, 15),
            "completed": True,
            "start_time": datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc),
            "end_time": None,
            "notes": "",
            "session_type": "reading",
            "tags": [],
            "created_at": datetime(2024, 1, 15, 8, 30),
        }

        assert _session_from_row(row).start_time.tzinfo is None

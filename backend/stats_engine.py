"""
Study Tracker - Study Statistics Engine
Folds completed study sessions into a user's aggregate statistics
"""

from datetime import date, timedelta
from typing import Optional

from models import StudyStats, DAYS_IN_WEEK


class InvalidSessionError(ValueError):
    """Raised when a session cannot be applied to a user's statistics."""


# ============================================
# DATE HELPERS
# ============================================

def day_of_week(day: date) -> int:
    """Weekday index with 0 = Sunday and 6 = Saturday."""
    return (day.weekday() + 1) % DAYS_IN_WEEK


def week_start(day: date) -> date:
    """The Sunday on or before the given date."""
    return day - timedelta(days=day_of_week(day))


def is_streak_active(stats: StudyStats, today: date) -> bool:
    """A streak stays alive until a full calendar day passes without study."""
    last = stats.last_study_date
    if last is None:
        return False
    return last == today or last == today - timedelta(days=1)


def effective_streak(stats: StudyStats, today: date) -> int:
    """Streak as the user would see it today, 0 once it has lapsed."""
    return stats.current_streak if is_streak_active(stats, today) else 0


# ============================================
# SESSION COMPLETION
# ============================================

def _next_streak(current_streak: int, last_study_date: Optional[date], today: date) -> int:
    if last_study_date == today:
        return current_streak
    if last_study_date == today - timedelta(days=1):
        return current_streak + 1
    # First ever session, a gap of two or more days, or a date before the last one
    return 1


def record_session_completion(
    stats: StudyStats,
    session_duration_minutes: int,
    today: date,
    *,
    reset_weekly: bool = False
) -> StudyStats:
    """
    Apply one completed session to a user's statistics.

    Args:
        stats: Current statistics, left untouched
        session_duration_minutes: Positive session length in whole minutes
        today: Calendar date the session counts towards
        reset_weekly: Zero the weekday buckets when `today` starts a new
            Sunday-based week. Off by default, buckets then accumulate forever.

    Returns:
        New statistics value

    Raises:
        InvalidSessionError: missing stats or a non-positive duration
    """
    if stats is None:
        raise InvalidSessionError("stats are required")
    if isinstance(session_duration_minutes, bool) or not isinstance(session_duration_minutes, int):
        raise InvalidSessionError(
            f"session duration must be whole minutes, got {session_duration_minutes!r}"
        )
    if session_duration_minutes <= 0:
        raise InvalidSessionError(
            f"session duration must be positive, got {session_duration_minutes}"
        )
    if today is None:
        raise InvalidSessionError("session date is required")

    hours = session_duration_minutes / 60
    last = stats.last_study_date

    # Streak is decided against the previous study date, before anything else moves
    current_streak = _next_streak(stats.current_streak, last, today)
    longest_streak = max(stats.longest_streak, current_streak)

    weekly_hours = list(stats.weekly_hours)
    if reset_weekly and last is not None and week_start(last) != week_start(today):
        weekly_hours = [0.0] * DAYS_IN_WEEK
    weekly_hours[day_of_week(today)] += hours

    today_hours = stats.today_hours + hours if last == today else hours

    return stats.model_copy(update={
        "total_hours": stats.total_hours + hours,
        "total_sessions": stats.total_sessions + 1,
        "current_streak": current_streak,
        "longest_streak": longest_streak,
        "weekly_hours": weekly_hours,
        "last_study_date": today,
        "today_hours": today_hours,
    })

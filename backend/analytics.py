"""
Study Tracker - Study Analytics
Period summaries, breakdowns and a productivity score computed from stored sessions
"""

import calendar
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from achievements import DEFAULT_WEEKLY_HOURS_TARGET
from models import AnalyticsPeriod, StudySession, StudyStats, UserSettings
from stats_engine import effective_streak


DEFAULT_DAILY_HOURS_TARGET = 2.0

# Start hour (inclusive) to end hour (exclusive); everything else is night
TIME_OF_DAY_BUCKETS = {
    "morning": (6, 12),
    "afternoon": (12, 18),
    "evening": (18, 22),
}


# ============================================
# PERIODS
# ============================================

def _shift_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def period_start(period: str, today: date) -> date:
    """First calendar date (inclusive) covered by an analytics period."""
    period = AnalyticsPeriod(period)

    if period == AnalyticsPeriod.WEEK:
        return today - timedelta(days=7)
    if period == AnalyticsPeriod.MONTH:
        return _shift_months(today, -1)
    return _shift_months(today, -12)


def sessions_in_period(sessions: Iterable[StudySession], start: date, end: date) -> List[StudySession]:
    return [s for s in sessions if start <= s.date <= end]


# ============================================
# BREAKDOWNS
# ============================================

def subject_breakdown(sessions: Iterable[StudySession]) -> Dict[str, float]:
    """Hours per subject."""
    breakdown: Dict[str, float] = {}
    for s in sessions:
        breakdown[s.subject] = breakdown.get(s.subject, 0.0) + s.duration_minutes / 60
    return breakdown


def daily_breakdown(sessions: Iterable[StudySession]) -> Dict[str, float]:
    """Hours per ISO date, oldest first."""
    breakdown: Dict[str, float] = {}
    for s in sorted(sessions, key=lambda s: s.date):
        key = s.date.isoformat()
        breakdown[key] = breakdown.get(key, 0.0) + s.duration_minutes / 60
    return breakdown


def time_of_day_bucket(hour: int) -> str:
    for name, (start, end) in TIME_OF_DAY_BUCKETS.items():
        if start <= hour < end:
            return name
    return "night"


def time_of_day_breakdown(sessions: Iterable[StudySession]) -> Dict[str, int]:
    """Session counts by start hour. Sessions without a start time count at noon."""
    breakdown = {name: 0 for name in TIME_OF_DAY_BUCKETS}
    breakdown["night"] = 0

    for s in sessions:
        hour = s.start_time.hour if s.start_time else 12
        breakdown[time_of_day_bucket(hour)] += 1

    return breakdown


# ============================================
# SCORES
# ============================================

def calculate_productivity_score(
    stats: StudyStats,
    sessions: List[StudySession],
    settings: Optional[UserSettings] = None,
    streak: Optional[int] = None
) -> int:
    """
    Productivity score from 0 to 100.

    Consistency is worth 40 points (2 per streak day), the share of completed
    sessions 30 points and progress toward the weekly hours target 30 points.
    Pass the streak as of the report date; it defaults to the stored streak.
    """
    if streak is None:
        streak = stats.current_streak
    score = min(streak * 2, 40)

    completed = sum(1 for s in sessions if s.completed)
    completion_rate = completed / len(sessions) if sessions else 0
    score += completion_rate * 30

    weekly_goal = settings.weekly_hours_target if settings else DEFAULT_WEEKLY_HOURS_TARGET
    goal_achievement = min(stats.weekly_total / weekly_goal, 1) if weekly_goal > 0 else 0
    score += goal_achievement * 30

    return round(score)


def calculate_growth(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 1)


# ============================================
# ANALYTICS
# ============================================

def get_study_analytics(
    sessions: List[StudySession],
    stats: StudyStats,
    settings: Optional[UserSettings] = None,
    period: str = "week",
    today: Optional[date] = None
) -> dict:
    """Get comprehensive study time analytics for one user."""
    today = today or date.today()
    start = period_start(period, today)
    period_sessions = sessions_in_period(sessions, start, today)

    total_hours = sum(s.duration_minutes for s in period_sessions) / 60
    total_sessions = len(period_sessions)
    daily = daily_breakdown(period_sessions)

    # Same-length window right before this one, for growth
    previous_start = start - (today - start)
    previous_sessions = sessions_in_period(sessions, previous_start, start - timedelta(days=1))
    previous_hours = sum(s.duration_minutes for s in previous_sessions) / 60

    current_streak = effective_streak(stats, today)

    daily_target = settings.daily_goal if settings else DEFAULT_DAILY_HOURS_TARGET
    weekly_target = settings.weekly_hours_target if settings else DEFAULT_WEEKLY_HOURS_TARGET

    return {
        "period": AnalyticsPeriod(period).value,
        "start_date": start.isoformat(),
        "end_date": today.isoformat(),
        "total_hours": round(total_hours, 2),
        "total_sessions": total_sessions,
        "average_session_length": round(total_hours / total_sessions, 2) if total_sessions else 0,
        "current_streak": current_streak,
        "longest_streak": stats.longest_streak,
        "subject_breakdown": {k: round(v, 2) for k, v in subject_breakdown(period_sessions).items()},
        "daily_breakdown": {k: round(v, 2) for k, v in daily.items()},
        "time_of_day": time_of_day_breakdown(period_sessions),
        "weekly_hours": stats.weekly_hours,
        "goals": {
            "daily_target": daily_target,
            "weekly_target": weekly_target,
            "daily_progress": round(daily.get(today.isoformat(), 0.0), 2),
            "weekly_progress": round(stats.weekly_total, 2),
        },
        "growth": {
            "previous_hours": round(previous_hours, 2),
            "hours": calculate_growth(total_hours, previous_hours),
        },
        "productivity_score": calculate_productivity_score(
            stats, period_sessions, settings, streak=current_streak
        ),
    }

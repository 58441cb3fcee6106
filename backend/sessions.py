"""
Study Tracker - Study Session Service
Users, timed study sessions and the completion flow that feeds statistics and achievements
"""

from datetime import date, datetime, timedelta
from typing import List, Optional

from achievements import (
    build_records, evaluate, get_achievement, get_achievement_progress, get_achievement_summary
)
from analytics import get_study_analytics, period_start
from config import StatsConfig, get_stats_config
from models import (
    ActiveTimer, AchievementProgress, SessionCompletion, SessionResult, SessionType,
    StudySession, StudyStats, UserCreate, UserProfile, UserSettings
)
from notifications import (
    NotificationDispatcher, build_achievement_notification, build_streak_notification,
    streak_milestone_reached
)
from stats_engine import InvalidSessionError, record_session_completion
from store import StatsStore
from logger import get_logger

log = get_logger("sessions")


class UserNotFoundError(LookupError):
    """No user with the given id."""


class UserExistsError(ValueError):
    """A user with the given id already exists."""


class TimerError(ValueError):
    """Timer started twice or stopped while not running."""


def format_duration(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if hours > 0 else f"{mins} minutes"


class StudyService:
    """Entry point for everything that changes a user's study record."""

    def __init__(self, store: StatsStore, dispatcher: NotificationDispatcher,
                 stats_config: Optional[StatsConfig] = None):
        self.store = store
        self.dispatcher = dispatcher
        self.stats_config = stats_config or get_stats_config()

    # ============================================
    # USERS
    # ============================================

    async def create_user(self, data: UserCreate) -> UserProfile:
        settings = data.settings or UserSettings(
            weekly_hours_target=self.stats_config.default_weekly_hours_target
        )
        profile = UserProfile(user_id=data.user_id, display_name=data.display_name, settings=settings)

        if not await self.store.create_user(profile):
            raise UserExistsError(f"User {data.user_id} already exists")

        log.info(f"Created user {data.user_id}")
        return profile

    async def get_user(self, user_id: str) -> UserProfile:
        profile = await self.store.get_user(user_id)
        if profile is None:
            raise UserNotFoundError(user_id)
        return profile

    async def get_user_stats(self, user_id: str) -> StudyStats:
        return (await self.get_user(user_id)).stats

    async def update_settings(self, user_id: str, settings: UserSettings) -> UserProfile:
        profile = await self.store.update_settings(user_id, settings)
        if profile is None:
            raise UserNotFoundError(user_id)
        return profile

    # ============================================
    # SESSION COMPLETION
    # ============================================

    async def complete_session(self, user_id: str, session: SessionCompletion) -> SessionResult:
        """
        Record a study session and fold it into the user's statistics.

        The stats update and achievement evaluation run inside the store's
        per-user exclusive section; notifications go out afterwards and never
        affect the result.
        """
        reset_weekly = self.stats_config.weekly_hours_mode == "calendar_week"

        def update(profile: UserProfile):
            if not session.completed:
                # Kept for analytics, but abandoned sessions earn nothing
                return profile.stats, []

            last = profile.stats.last_study_date
            if last is not None and session.date < last:
                raise InvalidSessionError(
                    f"Session dated {session.date} arrived after one dated {last}; "
                    "sessions must be recorded in chronological order"
                )

            new_stats = record_session_completion(
                profile.stats, session.duration_minutes, session.date, reset_weekly=reset_weekly
            )
            new_ids = evaluate(new_stats, profile.settings, profile.earned_ids)
            return new_stats, build_records(new_ids)

        outcome = await self.store.record_completion(user_id, session, update)
        if outcome is None:
            raise UserNotFoundError(user_id)

        log.info(
            f"Session recorded for {user_id}: {session.subject}, {session.duration_minutes} min, "
            f"streak {outcome.stats.current_streak}"
        )

        notifications = [
            build_achievement_notification(user_id, get_achievement(r.achievement_id))
            for r in outcome.achievements
        ]
        milestone = streak_milestone_reached(
            outcome.previous_stats, outcome.stats, self.stats_config.streak_milestones
        )
        if milestone:
            notifications.append(build_streak_notification(user_id, milestone))
        if notifications:
            self.dispatcher.dispatch(user_id, outcome.settings, notifications)

        duration_str = format_duration(session.duration_minutes)
        return SessionResult(
            session=outcome.session,
            stats=outcome.stats,
            achievements_earned=outcome.achievements,
            message=f"Studied {session.subject} for {duration_str}",
        )

    async def get_study_sessions(self, user_id: str, days: int = 7, subject: Optional[str] = None,
                                 limit: int = 50, today: Optional[date] = None) -> List[StudySession]:
        """Get past study sessions with optional filters."""
        await self.get_user(user_id)
        today = today or date.today()
        return await self.store.list_sessions(
            user_id, since=today - timedelta(days=days), subject=subject, limit=limit
        )

    # ============================================
    # TIMER
    # ============================================

    async def start_timer(self, user_id: str, subject: str,
                          session_type: SessionType = SessionType.READING,
                          now: Optional[datetime] = None) -> ActiveTimer:
        """Start a study session timer. One timer per user."""
        await self.get_user(user_id)
        timer = ActiveTimer(
            user_id=user_id,
            subject=subject.strip(),
            session_type=session_type,
            started_at=now or datetime.now(),
        )
        if not await self.store.start_timer(timer):
            raise TimerError("Timer already running")
        return timer

    async def get_active_timer(self, user_id: str, now: Optional[datetime] = None) -> Optional[dict]:
        """Currently running timer with elapsed time, or None."""
        timer = await self.store.get_active_timer(user_id)
        if timer is None:
            return None
        now = now or datetime.now()
        return {
            **timer.model_dump(),
            "elapsed_seconds": max(int((now - timer.started_at).total_seconds()), 0),
        }

    async def stop_timer(self, user_id: str, now: Optional[datetime] = None) -> SessionResult:
        """Stop the active timer and record the finished session."""
        timer = await self.store.pop_active_timer(user_id)
        if timer is None:
            raise TimerError("No active timer")

        now = now or datetime.now()
        minutes = int((now - timer.started_at).total_seconds() // 60)
        if minutes < 1:
            raise InvalidSessionError("Session too short to record, study for at least a minute")

        session = SessionCompletion(
            subject=timer.subject,
            duration_minutes=minutes,
            date=now.date(),
            start_time=timer.started_at,
            end_time=now,
            session_type=timer.session_type,
        )
        return await self.complete_session(user_id, session)

    # ============================================
    # ACHIEVEMENTS & ANALYTICS
    # ============================================

    async def get_achievements(self, user_id: str) -> dict:
        profile = await self.get_user(user_id)
        return {
            "earned": [r.model_dump() for r in profile.achievements],
            "summary": get_achievement_summary(profile.achievements),
        }

    async def get_achievement_progress(self, user_id: str) -> List[AchievementProgress]:
        profile = await self.get_user(user_id)
        return get_achievement_progress(profile.stats, profile.settings, profile.achievements)

    async def get_analytics(self, user_id: str, period: str = "week",
                            today: Optional[date] = None) -> dict:
        profile = await self.get_user(user_id)
        today = today or date.today()
        start = period_start(period, today)
        # Twice the period so growth can compare against the window before it
        sessions = await self.store.list_sessions(user_id, since=start - (today - start))
        return get_study_analytics(sessions, profile.stats, profile.settings, period, today)

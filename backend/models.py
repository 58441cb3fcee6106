"""
Study Tracker - Pydantic Models (v2 syntax)
"""

import datetime as dt
from datetime import date, datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator


DAYS_IN_WEEK = 7


# ============================================
# ENUMS
# ============================================

class SessionType(str, Enum):
    READING = "reading"
    PRACTICE = "practice"
    REVIEW = "review"
    EXAM = "exam"


class FocusTime(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class NotificationType(str, Enum):
    ACHIEVEMENT = "achievement"
    STREAK = "streak"
    STUDY_REMINDER = "study_reminder"


class AnalyticsPeriod(str, Enum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


# ============================================
# STATISTICS
# ============================================

class StudyStats(BaseModel):
    """Per-user aggregate statistics. Created all-zero with the user."""

    total_hours: float = 0.0
    total_sessions: int = 0
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    # Index 0 is Sunday, 6 is Saturday
    weekly_hours: List[float] = Field(default_factory=lambda: [0.0] * DAYS_IN_WEEK)
    last_study_date: Optional[date] = None
    today_hours: float = 0.0

    @field_validator("weekly_hours")
    @classmethod
    def _seven_buckets(cls, value: List[float]) -> List[float]:
        if len(value) != DAYS_IN_WEEK:
            raise ValueError(f"weekly_hours must have exactly {DAYS_IN_WEEK} entries")
        return value

    @property
    def weekly_total(self) -> float:
        return sum(self.weekly_hours)


class UserSettings(BaseModel):
    notifications_enabled: bool = True
    study_reminders: bool = True
    achievement_notifications: bool = True
    email_notifications: bool = False
    daily_goal: float = Field(default=2, ge=0)
    weekly_hours_target: float = Field(default=14, gt=0)
    daily_sessions_target: int = Field(default=3, ge=0)
    weekly_sessions_target: int = Field(default=21, ge=0)
    preferred_study_start_time: str = Field(default="09:00", pattern=r"^\d{2}:\d{2}$")
    preferred_study_end_time: str = Field(default="17:00", pattern=r"^\d{2}:\d{2}$")
    best_focus_time: FocusTime = FocusTime.MORNING
    study_days_of_week: List[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])

    @field_validator("study_days_of_week")
    @classmethod
    def _valid_days(cls, value: List[int]) -> List[int]:
        if any(d < 0 or d >= DAYS_IN_WEEK for d in value):
            raise ValueError("study days must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(value))


# ============================================
# SESSION MODELS
# ============================================

class SessionCompletion(BaseModel):
    """A completed study session as it enters the engine."""

    subject: str = Field(min_length=1, max_length=100)
    duration_minutes: int = Field(gt=0)
    date: dt.date = Field(default_factory=dt.date.today)
    completed: bool = True
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    notes: str = Field(default="", max_length=500)
    session_type: SessionType = SessionType.READING
    tags: List[str] = Field(default_factory=list)

    @field_validator("subject")
    @classmethod
    def _strip_subject(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("subject must not be blank")
        return value

    @field_validator("tags")
    @classmethod
    def _strip_tags(cls, value: List[str]) -> List[str]:
        return [t.strip() for t in value if t.strip()]

    @field_validator("start_time", "end_time")
    @classmethod
    def _naive_local_time(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Stored as server-local wall time, like every other timestamp
        if value is not None and value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value


class StudySession(SessionCompletion):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    created_at: datetime


class ActiveTimer(BaseModel):
    user_id: str
    subject: str
    session_type: SessionType = SessionType.READING
    started_at: datetime


# ============================================
# ACHIEVEMENT MODELS
# ============================================

class AchievementRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    achievement_id: str
    earned_at: datetime


class AchievementProgress(BaseModel):
    achievement_id: str
    title: str
    description: str
    icon: str
    current_value: float
    target_value: float
    percentage: float
    is_complete: bool
    earned_at: Optional[datetime] = None


# ============================================
# USER MODELS
# ============================================

class UserCreate(BaseModel):
    user_id: str = Field(min_length=1, max_length=128)
    display_name: str = Field(min_length=1, max_length=50)
    settings: Optional[UserSettings] = None


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    display_name: str
    settings: UserSettings = Field(default_factory=UserSettings)
    stats: StudyStats = Field(default_factory=StudyStats)
    achievements: List[AchievementRecord] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def earned_ids(self) -> List[str]:
        return [a.achievement_id for a in self.achievements]


# ============================================
# NOTIFICATION MODELS
# ============================================

class Notification(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: str
    type: NotificationType
    title: str
    body: str
    data: Dict[str, Any] = Field(default_factory=dict)
    read: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


# ============================================
# API REQUEST / RESPONSE MODELS
# ============================================

class TimerStart(BaseModel):
    subject: str = Field(min_length=1, max_length=100)
    session_type: SessionType = SessionType.READING


class SessionResult(BaseModel):
    session: StudySession
    stats: StudyStats
    achievements_earned: List[AchievementRecord] = Field(default_factory=list)
    message: str = ""


class HealthStatus(BaseModel):
    status: str = "healthy"
    version: str = "1.0.0"
    storage: str = "memory"

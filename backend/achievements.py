"""
Study Tracker - Achievement System
Fixed achievement catalog and the evaluator that decides what a user has newly earned
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from models import AchievementProgress, AchievementRecord, StudyStats, UserSettings


DEFAULT_WEEKLY_HOURS_TARGET = 14.0
GOAL_CRUSHER_MULTIPLIER = 1.5


# ============================================
# ENUMS
# ============================================

class AchievementCategory(str, Enum):
    STREAK = "streak"
    STUDY = "study"
    GOAL = "goal"
    SPECIAL = "special"


# ============================================
# ACHIEVEMENT DEFINITIONS
# ============================================

@dataclass(frozen=True)
class Achievement:
    id: str
    title: str
    description: str
    icon: str
    category: AchievementCategory
    condition: Callable[[StudyStats, float], bool]
    # Returns (current, target) for progress display
    measure: Callable[[StudyStats, float], tuple]


def _weekly_target(settings: Optional[UserSettings]) -> float:
    if settings is None or not settings.weekly_hours_target:
        return DEFAULT_WEEKLY_HOURS_TARGET
    return settings.weekly_hours_target


def _never(stats: StudyStats, weekly_target: float) -> bool:
    # Needs per-session start time or duration, which aggregate stats do not carry
    return False


# Catalog order is evaluation order
ACHIEVEMENTS: List[Achievement] = [
    Achievement(
        id="first_session",
        title="First Session",
        description="Complete your first study session",
        icon="✨",
        category=AchievementCategory.STUDY,
        condition=lambda s, t: s.total_sessions >= 1,
        measure=lambda s, t: (s.total_sessions, 1),
    ),
    Achievement(
        id="streak_7",
        title="7 Day Streak",
        description="Study for 7 consecutive days",
        icon="🔥",
        category=AchievementCategory.STREAK,
        condition=lambda s, t: s.current_streak >= 7,
        measure=lambda s, t: (s.current_streak, 7),
    ),
    Achievement(
        id="early_bird",
        title="Early Bird",
        description="Start studying before 8 AM",
        icon="🌅",
        category=AchievementCategory.SPECIAL,
        condition=_never,
        measure=lambda s, t: (0, 1),
    ),
    Achievement(
        id="night_owl",
        title="Night Owl",
        description="Study after 10 PM for 5 days",
        icon="🦉",
        category=AchievementCategory.SPECIAL,
        condition=_never,
        measure=lambda s, t: (0, 5),
    ),
    Achievement(
        id="consistent_reader",
        title="Consistent Reader",
        description="Complete 20 reading sessions",
        icon="📚",
        category=AchievementCategory.STUDY,
        condition=lambda s, t: s.total_sessions >= 20,
        measure=lambda s, t: (s.total_sessions, 20),
    ),
    Achievement(
        id="deep_focus",
        title="Deep Focus",
        description="Study for 3+ hours in a single session",
        icon="🧠",
        category=AchievementCategory.SPECIAL,
        condition=_never,
        measure=lambda s, t: (0, 3),
    ),
    Achievement(
        id="goal_crusher",
        title="Goal Crusher",
        description="Exceed weekly goal by 50%",
        icon="🎯",
        category=AchievementCategory.GOAL,
        condition=lambda s, t: s.weekly_total >= t * GOAL_CRUSHER_MULTIPLIER,
        measure=lambda s, t: (s.weekly_total, t * GOAL_CRUSHER_MULTIPLIER),
    ),
    Achievement(
        id="dedication",
        title="Dedication",
        description="Study for 30 consecutive days",
        icon="💪",
        category=AchievementCategory.STREAK,
        condition=lambda s, t: s.current_streak >= 30,
        measure=lambda s, t: (s.current_streak, 30),
    ),
]

ACHIEVEMENTS_BY_ID: Dict[str, Achievement] = {a.id: a for a in ACHIEVEMENTS}


def get_achievement(achievement_id: str) -> Achievement:
    """Look up a catalog entry. Raises KeyError for unknown ids."""
    return ACHIEVEMENTS_BY_ID[achievement_id]


def catalog_as_dicts() -> List[Dict[str, str]]:
    """Display metadata for every catalog entry, without the predicates."""
    return [
        {
            "id": a.id,
            "title": a.title,
            "description": a.description,
            "icon": a.icon,
            "category": a.category.value,
        }
        for a in ACHIEVEMENTS
    ]


# ============================================
# EVALUATOR
# ============================================

def evaluate(
    stats: StudyStats,
    settings: Optional[UserSettings],
    existing_achievement_ids: Iterable[str]
) -> List[str]:
    """
    Return the ids of achievements the stats now satisfy and that are not yet earned.

    Pure: persisting the records and notifying the user is up to the caller.
    """
    earned = set(existing_achievement_ids)
    weekly_target = _weekly_target(settings)

    return [
        a.id for a in ACHIEVEMENTS
        if a.id not in earned and a.condition(stats, weekly_target)
    ]


def build_records(achievement_ids: Iterable[str], earned_at: Optional[datetime] = None) -> List[AchievementRecord]:
    """Turn newly earned ids into records sharing one timestamp."""
    earned_at = earned_at or datetime.now()
    return [
        AchievementRecord(achievement_id=get_achievement(a_id).id, earned_at=earned_at)
        for a_id in achievement_ids
    ]


# ============================================
# PROGRESS TRACKING
# ============================================

def get_achievement_progress(
    stats: StudyStats,
    settings: Optional[UserSettings],
    earned: Iterable[AchievementRecord]
) -> List[AchievementProgress]:
    """Progress toward every catalog entry, in catalog order."""
    earned_at = {r.achievement_id: r.earned_at for r in earned}
    weekly_target = _weekly_target(settings)
    progress = []

    for a in ACHIEVEMENTS:
        current, target = a.measure(stats, weekly_target)
        is_complete = a.id in earned_at

        if is_complete:
            percentage = 100.0
        elif target > 0:
            percentage = round(min(current / target, 1.0) * 100, 1)
        else:
            percentage = 0.0

        progress.append(AchievementProgress(
            achievement_id=a.id,
            title=a.title,
            description=a.description,
            icon=a.icon,
            current_value=round(current, 2),
            target_value=round(target, 2),
            percentage=percentage,
            is_complete=is_complete,
            earned_at=earned_at.get(a.id),
        ))

    return progress


def get_achievement_summary(earned: Iterable[AchievementRecord], recent_days: int = 7,
                            now: Optional[datetime] = None) -> Dict[str, object]:
    """Summary statistics for a user's achievements."""
    records = [r for r in earned if r.achievement_id in ACHIEVEMENTS_BY_ID]
    now = now or datetime.now()
    cutoff = now - timedelta(days=recent_days)

    total = len(ACHIEVEMENTS)
    recent = sorted(
        (r for r in records if r.earned_at >= cutoff),
        key=lambda r: r.earned_at,
        reverse=True
    )

    by_category: Dict[str, Dict[str, int]] = {}
    earned_ids = {r.achievement_id for r in records}
    for a in ACHIEVEMENTS:
        bucket = by_category.setdefault(a.category.value, {"total": 0, "earned": 0})
        bucket["total"] += 1
        if a.id in earned_ids:
            bucket["earned"] += 1

    return {
        "total_achievements": total,
        "earned_achievements": len(earned_ids),
        "completion_percent": round(len(earned_ids) / total * 100, 1) if total > 0 else 0,
        "by_category": by_category,
        "recent": [r.model_dump() for r in recent],
    }

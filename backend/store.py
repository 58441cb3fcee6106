"""
Study Tracker - Storage Interface
Store contract shared by the in-memory and PostgreSQL backends
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Tuple

from models import (
    ActiveTimer, AchievementRecord, Notification, SessionCompletion,
    StudySession, StudyStats, UserProfile, UserSettings
)
from logger import get_logger

log = get_logger("store")

# Given the user's profile as currently stored, return the new stats and the
# achievement records to add. Runs inside the store's per-user exclusive section.
CompletionUpdate = Callable[[UserProfile], Tuple[StudyStats, List[AchievementRecord]]]


@dataclass
class CompletionOutcome:
    session: StudySession
    previous_stats: StudyStats
    stats: StudyStats
    settings: UserSettings
    achievements: List[AchievementRecord] = field(default_factory=list)


class StatsStore:
    """Persistence for users, their statistics, sessions, achievements and notifications."""

    name = "abstract"

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def create_user(self, profile: UserProfile) -> bool:
        """Insert a new user. Returns False when the id is taken."""
        raise NotImplementedError

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        raise NotImplementedError

    async def update_settings(self, user_id: str, settings: UserSettings) -> Optional[UserProfile]:
        raise NotImplementedError

    async def record_completion(
        self,
        user_id: str,
        session: SessionCompletion,
        update: CompletionUpdate
    ) -> Optional[CompletionOutcome]:
        """
        Apply a completed session atomically for one user.

        Completions for the same user are serialised; the stats, the session row
        and the new achievement records are written together or not at all.
        Returns None for an unknown user.
        """
        raise NotImplementedError

    async def list_sessions(
        self,
        user_id: str,
        since: Optional[date] = None,
        subject: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[StudySession]:
        """Sessions newest first."""
        raise NotImplementedError

    async def save_notification(self, notification: Notification) -> Notification:
        raise NotImplementedError

    async def list_notifications(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        raise NotImplementedError

    async def mark_notification_read(self, user_id: str, notification_id: int) -> Optional[Notification]:
        raise NotImplementedError

    async def get_active_timer(self, user_id: str) -> Optional[ActiveTimer]:
        raise NotImplementedError

    async def start_timer(self, timer: ActiveTimer) -> bool:
        """Store a running timer. Returns False when one is already running."""
        raise NotImplementedError

    async def pop_active_timer(self, user_id: str) -> Optional[ActiveTimer]:
        raise NotImplementedError


# ============================================
# IN-MEMORY STORE
# ============================================

class MemoryStatsStore(StatsStore):
    """Process-local store. Per-user asyncio locks act as the single writer."""

    name = "memory"

    def __init__(self):
        self._users: Dict[str, UserProfile] = {}
        self._sessions: Dict[str, List[StudySession]] = {}
        self._notifications: Dict[str, List[Notification]] = {}
        self._timers: Dict[str, ActiveTimer] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._next_session_id = 1
        self._next_notification_id = 1

    def _lock(self, user_id: str) -> asyncio.Lock:
        # Created with the user, so only known ids ever hold a lock
        return self._locks[user_id]

    async def create_user(self, profile: UserProfile) -> bool:
        if profile.user_id in self._users:
            return False
        self._users[profile.user_id] = profile.model_copy(deep=True)
        self._sessions[profile.user_id] = []
        self._notifications[profile.user_id] = []
        self._locks[profile.user_id] = asyncio.Lock()
        return True

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        profile = self._users.get(user_id)
        return profile.model_copy(deep=True) if profile else None

    async def update_settings(self, user_id: str, settings: UserSettings) -> Optional[UserProfile]:
        # Users are never deleted, so unknown ids can be turned away before taking a lock
        if user_id not in self._users:
            return None
        async with self._lock(user_id):
            profile = self._users[user_id]
            profile.settings = settings.model_copy(deep=True)
            return profile.model_copy(deep=True)

    async def record_completion(
        self,
        user_id: str,
        session: SessionCompletion,
        update: CompletionUpdate
    ) -> Optional[CompletionOutcome]:
        if user_id not in self._users:
            return None
        async with self._lock(user_id):
            current = await self.get_user(user_id)
            previous = current.stats
            new_stats, new_records = update(current)

            # Nothing is written until the update succeeded
            stored = StudySession(
                id=self._next_session_id,
                user_id=user_id,
                created_at=datetime.now(),
                **session.model_dump()
            )
            self._next_session_id += 1
            self._sessions[user_id].append(stored)

            profile = self._users[user_id]
            earned = set(profile.earned_ids)
            added = [r for r in new_records if r.achievement_id not in earned]
            profile.stats = new_stats
            profile.achievements.extend(added)

            return CompletionOutcome(
                session=stored.model_copy(deep=True),
                previous_stats=previous,
                stats=new_stats.model_copy(deep=True),
                settings=profile.settings.model_copy(deep=True),
                achievements=list(added),
            )

    async def list_sessions(
        self,
        user_id: str,
        since: Optional[date] = None,
        subject: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[StudySession]:
        sessions = [
            s for s in self._sessions.get(user_id, [])
            if (since is None or s.date >= since) and (subject is None or s.subject == subject)
        ]
        sessions.sort(key=lambda s: (s.date, s.created_at, s.id), reverse=True)
        if limit is not None:
            sessions = sessions[:limit]
        return [s.model_copy(deep=True) for s in sessions]

    async def save_notification(self, notification: Notification) -> Notification:
        stored = notification.model_copy(update={"id": self._next_notification_id})
        self._next_notification_id += 1
        self._notifications.setdefault(notification.user_id, []).append(stored)
        return stored.model_copy(deep=True)

    async def list_notifications(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        items = [n for n in self._notifications.get(user_id, []) if not (unread_only and n.read)]
        items.sort(key=lambda n: (n.created_at, n.id), reverse=True)
        return [n.model_copy(deep=True) for n in items]

    async def mark_notification_read(self, user_id: str, notification_id: int) -> Optional[Notification]:
        for n in self._notifications.get(user_id, []):
            if n.id == notification_id:
                n.read = True
                return n.model_copy(deep=True)
        return None

    async def get_active_timer(self, user_id: str) -> Optional[ActiveTimer]:
        timer = self._timers.get(user_id)
        return timer.model_copy() if timer else None

    async def start_timer(self, timer: ActiveTimer) -> bool:
        if timer.user_id in self._timers:
            return False
        self._timers[timer.user_id] = timer.model_copy()
        return True

    async def pop_active_timer(self, user_id: str) -> Optional[ActiveTimer]:
        return self._timers.pop(user_id, None)


# ============================================
# FACTORY
# ============================================

def create_store(backend: str, database_url: Optional[str] = None,
                 pool_min_size: int = 2, pool_max_size: int = 10) -> StatsStore:
    """Build the store named by the storage configuration."""
    log.info(f"Using {backend} storage backend")
    if backend == "memory":
        return MemoryStatsStore()
    if backend == "postgres":
        from database import PostgresStatsStore
        return PostgresStatsStore(database_url, min_size=pool_min_size, max_size=pool_max_size)
    raise ValueError(f"Unknown storage backend: {backend}")

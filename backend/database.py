"""
Study Tracker - Database Connection
Async PostgreSQL with asyncpg
"""

import json
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncIterator, List, Optional

import asyncpg

from models import (
    ActiveTimer, AchievementRecord, Notification, SessionCompletion,
    StudySession, StudyStats, UserProfile, UserSettings
)
from store import CompletionOutcome, CompletionUpdate, StatsStore
from logger import get_logger

log = get_logger("database")


class Database:
    """Async database connection manager."""

    def __init__(self, database_url: str, min_size: int = 2, max_size: int = 10):
        self._database_url = database_url
        self._min_size = min_size
        self._max_size = max_size
        self._pool = None

    async def connect(self):
        """Create connection pool."""
        self._pool = await asyncpg.create_pool(
            self._database_url, min_size=self._min_size, max_size=self._max_size
        )
        log.info("Database connected")

    async def disconnect(self):
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            log.info("Database disconnected")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Connection with an open transaction, committed on clean exit."""
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def fetch(self, query: str, *args) -> List[dict]:
        """Fetch multiple rows."""
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, *args)
            return [dict(row) for row in rows]

    async def fetch_one(self, query: str, *args) -> Optional[dict]:
        """Fetch single row."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            return dict(row) if row else None

    async def execute(self, query: str, *args) -> str:
        """Execute query (INSERT, UPDATE, DELETE)."""
        async with self._pool.acquire() as conn:
            return await conn.execute(query, *args)

    async def execute_returning(self, query: str, *args) -> Optional[dict]:
        """Execute and return the affected row."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            return dict(row) if row else None


# ============================================
# SCHEMA
# ============================================

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id VARCHAR(128) PRIMARY KEY,
        display_name VARCHAR(50) NOT NULL,
        settings JSONB NOT NULL DEFAULT '{}',
        total_hours DOUBLE PRECISION NOT NULL DEFAULT 0,
        total_sessions INTEGER NOT NULL DEFAULT 0,
        current_streak INTEGER NOT NULL DEFAULT 0,
        longest_streak INTEGER NOT NULL DEFAULT 0,
        weekly_hours DOUBLE PRECISION[] NOT NULL DEFAULT '{0,0,0,0,0,0,0}',
        last_study_date DATE,
        today_hours DOUBLE PRECISION NOT NULL DEFAULT 0,
        created_at TIMESTAMP NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS study_sessions (
        id SERIAL PRIMARY KEY,
        user_id VARCHAR(128) NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
        subject VARCHAR(100) NOT NULL,
        duration_minutes INTEGER NOT NULL CHECK (duration_minutes > 0),
        session_date DATE NOT NULL,
        completed BOOLEAN NOT NULL DEFAULT TRUE,
        start_time TIMESTAMP,
        end_time TIMESTAMP,
        notes VARCHAR(500) NOT NULL DEFAULT '',
        session_type VARCHAR(20) NOT NULL DEFAULT 'reading',
        tags TEXT[] NOT NULL DEFAULT '{}',
        created_at TIMESTAMP NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_achievements (
        id SERIAL PRIMARY KEY,
        user_id VARCHAR(128) NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
        achievement_id VARCHAR(50) NOT NULL,
        earned_at TIMESTAMP NOT NULL DEFAULT NOW(),
        UNIQUE(user_id, achievement_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id SERIAL PRIMARY KEY,
        user_id VARCHAR(128) NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
        type VARCHAR(30) NOT NULL,
        title VARCHAR(200) NOT NULL,
        body TEXT NOT NULL,
        data JSONB NOT NULL DEFAULT '{}',
        read BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMP NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS active_timers (
        user_id VARCHAR(128) PRIMARY KEY REFERENCES users(user_id) ON DELETE CASCADE,
        subject VARCHAR(100) NOT NULL,
        session_type VARCHAR(20) NOT NULL DEFAULT 'reading',
        started_at TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_study_sessions_user_date ON study_sessions(user_id, session_date DESC)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, read, created_at DESC)",
]


# ============================================
# ROW CONVERSION
# ============================================

def _json(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


def _stats_from_row(row: dict) -> StudyStats:
    return StudyStats(
        total_hours=row["total_hours"],
        total_sessions=row["total_sessions"],
        current_streak=row["current_streak"],
        longest_streak=row["longest_streak"],
        weekly_hours=list(row["weekly_hours"]),
        last_study_date=row["last_study_date"],
        today_hours=row["today_hours"],
    )


def _profile_from_rows(row: dict, achievements: List[dict]) -> UserProfile:
    return UserProfile(
        user_id=row["user_id"],
        display_name=row["display_name"],
        settings=UserSettings(**_json(row["settings"])),
        stats=_stats_from_row(row),
        achievements=[AchievementRecord(**a) for a in achievements],
        created_at=row["created_at"],
    )


def _session_from_row(row: dict) -> StudySession:
    return StudySession(
        id=row["id"],
        user_id=row["user_id"],
        subject=row["subject"],
        duration_minutes=row["duration_minutes"],
        date=row["session_date"],
        completed=row["completed"],
        start_time=row["start_time"],
        end_time=row["end_time"],
        notes=row["notes"],
        session_type=row["session_type"],
        tags=list(row["tags"]),
        created_at=row["created_at"],
    )


def _notification_from_row(row: dict) -> Notification:
    return Notification(**{**row, "data": _json(row["data"])})


# ============================================
# POSTGRES STORE
# ============================================

class PostgresStatsStore(StatsStore):
    """
    asyncpg-backed store.

    A session completion runs in one transaction that locks the user's row with
    SELECT ... FOR UPDATE, so concurrent completions for the same user queue up
    instead of overwriting each other's streak or weekday buckets.
    """

    name = "postgres"

    def __init__(self, database_url: str, min_size: int = 2, max_size: int = 10):
        self.db = Database(database_url, min_size=min_size, max_size=max_size)

    async def connect(self) -> None:
        await self.db.connect()
        await self.ensure_tables()

    async def disconnect(self) -> None:
        await self.db.disconnect()

    async def ensure_tables(self) -> None:
        """Create tables if they don't exist."""
        for statement in SCHEMA:
            await self.db.execute(statement)

    async def create_user(self, profile: UserProfile) -> bool:
        stats = profile.stats
        result = await self.db.execute("""
            INSERT INTO users (user_id, display_name, settings, total_hours, total_sessions,
                               current_streak, longest_streak, weekly_hours, last_study_date,
                               today_hours, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            ON CONFLICT (user_id) DO NOTHING
        """, profile.user_id, profile.display_name, profile.settings.model_dump_json(),
            stats.total_hours, stats.total_sessions, stats.current_streak,
            stats.longest_streak, stats.weekly_hours, stats.last_study_date,
            stats.today_hours, profile.created_at)
        return result == "INSERT 0 1"

    async def _load_profile(self, conn: asyncpg.Connection, user_id: str,
                            for_update: bool = False) -> Optional[UserProfile]:
        lock = " FOR UPDATE" if for_update else ""
        row = await conn.fetchrow(f"SELECT * FROM users WHERE user_id = $1{lock}", user_id)
        if not row:
            return None
        achievements = await conn.fetch("""
            SELECT achievement_id, earned_at FROM user_achievements
            WHERE user_id = $1 ORDER BY earned_at, id
        """, user_id)
        return _profile_from_rows(dict(row), [dict(a) for a in achievements])

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        async with self.db.transaction() as conn:
            return await self._load_profile(conn, user_id)

    async def update_settings(self, user_id: str, settings: UserSettings) -> Optional[UserProfile]:
        async with self.db.transaction() as conn:
            result = await conn.execute("""
                UPDATE users SET settings = $1, updated_at = NOW() WHERE user_id = $2
            """, settings.model_dump_json(), user_id)
            if result != "UPDATE 1":
                return None
            return await self._load_profile(conn, user_id)

    async def record_completion(
        self,
        user_id: str,
        session: SessionCompletion,
        update: CompletionUpdate
    ) -> Optional[CompletionOutcome]:
        async with self.db.transaction() as conn:
            profile = await self._load_profile(conn, user_id, for_update=True)
            if profile is None:
                return None

            new_stats, new_records = update(profile.model_copy(deep=True))

            await conn.execute("""
                UPDATE users
                SET total_hours = $1, total_sessions = $2, current_streak = $3,
                    longest_streak = $4, weekly_hours = $5, last_study_date = $6,
                    today_hours = $7, updated_at = NOW()
                WHERE user_id = $8
            """, new_stats.total_hours, new_stats.total_sessions, new_stats.current_streak,
                new_stats.longest_streak, new_stats.weekly_hours, new_stats.last_study_date,
                new_stats.today_hours, user_id)

            row = await conn.fetchrow("""
                INSERT INTO study_sessions (user_id, subject, duration_minutes, session_date,
                                            completed, start_time, end_time, notes,
                                            session_type, tags)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                RETURNING *
            """, user_id, session.subject, session.duration_minutes, session.date,
                session.completed, session.start_time, session.end_time, session.notes,
                session.session_type.value, session.tags)

            added = []
            for record in new_records:
                inserted = await conn.fetchrow("""
                    INSERT INTO user_achievements (user_id, achievement_id, earned_at)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (user_id, achievement_id) DO NOTHING
                    RETURNING achievement_id, earned_at
                """, user_id, record.achievement_id, record.earned_at)
                if inserted:
                    added.append(AchievementRecord(**dict(inserted)))

            return CompletionOutcome(
                session=_session_from_row(dict(row)),
                previous_stats=profile.stats,
                stats=new_stats,
                settings=profile.settings,
                achievements=added,
            )

    async def list_sessions(
        self,
        user_id: str,
        since: Optional[date] = None,
        subject: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[StudySession]:
        conditions = ["user_id = $1"]
        params: List[Any] = [user_id]

        if since is not None:
            params.append(since)
            conditions.append(f"session_date >= ${len(params)}")
        if subject is not None:
            params.append(subject)
            conditions.append(f"subject = ${len(params)}")

        limit_clause = ""
        if limit is not None:
            params.append(limit)
            limit_clause = f"LIMIT ${len(params)}"

        rows = await self.db.fetch(f"""
            SELECT * FROM study_sessions
            WHERE {" AND ".join(conditions)}
            ORDER BY session_date DESC, created_at DESC, id DESC
            {limit_clause}
        """, *params)
        return [_session_from_row(r) for r in rows]

    async def save_notification(self, notification: Notification) -> Notification:
        row = await self.db.execute_returning("""
            INSERT INTO notifications (user_id, type, title, body, data, read, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING *
        """, notification.user_id, notification.type.value, notification.title,
            notification.body, json.dumps(notification.data), notification.read,
            notification.created_at)
        return _notification_from_row(row)

    async def list_notifications(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        unread = " AND read = false" if unread_only else ""
        rows = await self.db.fetch(f"""
            SELECT * FROM notifications
            WHERE user_id = $1{unread}
            ORDER BY created_at DESC, id DESC
        """, user_id)
        return [_notification_from_row(r) for r in rows]

    async def mark_notification_read(self, user_id: str, notification_id: int) -> Optional[Notification]:
        row = await self.db.execute_returning("""
            UPDATE notifications SET read = true
            WHERE id = $1 AND user_id = $2
            RETURNING *
        """, notification_id, user_id)
        return _notification_from_row(row) if row else None

    async def get_active_timer(self, user_id: str) -> Optional[ActiveTimer]:
        row = await self.db.fetch_one("SELECT * FROM active_timers WHERE user_id = $1", user_id)
        return ActiveTimer(**row) if row else None

    async def start_timer(self, timer: ActiveTimer) -> bool:
        result = await self.db.execute("""
            INSERT INTO active_timers (user_id, subject, session_type, started_at)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (user_id) DO NOTHING
        """, timer.user_id, timer.subject, timer.session_type.value, timer.started_at)
        return result == "INSERT 0 1"

    async def pop_active_timer(self, user_id: str) -> Optional[ActiveTimer]:
        row = await self.db.execute_returning(
            "DELETE FROM active_timers WHERE user_id = $1 RETURNING *", user_id
        )
        return ActiveTimer(**row) if row else None

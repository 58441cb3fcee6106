"""
Study Tracker - Notification Dispatcher
Fire-and-forget delivery of achievement and streak notifications
"""

import asyncio
from typing import Dict, Iterable, List, Optional, Set

from achievements import Achievement
from models import Notification, NotificationType, StudyStats, UserSettings
from store import StatsStore
from logger import get_logger

log = get_logger("notifications")


# ============================================
# MESSAGE BUILDERS
# ============================================

def build_achievement_notification(user_id: str, achievement: Achievement) -> Notification:
    return Notification(
        user_id=user_id,
        type=NotificationType.ACHIEVEMENT,
        title="Achievement Unlocked! 🏆",
        body=f'You\'ve earned the "{achievement.title}" achievement!',
        data={"achievement_id": achievement.id},
    )


def build_streak_notification(user_id: str, streak_count: int) -> Notification:
    return Notification(
        user_id=user_id,
        type=NotificationType.STREAK,
        title=f"{streak_count} Day Streak! 🔥",
        body=f"Amazing! You've studied for {streak_count} days in a row!",
        data={"streak_count": streak_count},
    )


def streak_milestone_reached(previous: StudyStats, current: StudyStats,
                             milestones: Iterable[int]) -> Optional[int]:
    """The milestone the streak just stepped onto, if any."""
    if current.current_streak <= previous.current_streak:
        return None
    return current.current_streak if current.current_streak in set(milestones) else None


def allowed_for(settings: Optional[UserSettings], notification: Notification) -> bool:
    if settings is None:
        return True
    if not settings.notifications_enabled:
        return False
    if notification.type == NotificationType.ACHIEVEMENT:
        return settings.achievement_notifications
    return True


# ============================================
# WEBSOCKET CLIENTS
# ============================================

# Connected WebSocket clients per user
connected_clients: Dict[str, Set] = {}


async def register_client(user_id: str, websocket) -> None:
    """Register a WebSocket client for a user's notifications."""
    await websocket.accept()
    connected_clients.setdefault(user_id, set()).add(websocket)
    log.debug(f"Client connected for {user_id}")


async def unregister_client(user_id: str, websocket) -> None:
    """Unregister a WebSocket client."""
    clients = connected_clients.get(user_id)
    if clients:
        clients.discard(websocket)
        if not clients:
            connected_clients.pop(user_id, None)


def serialize_notification(notification: Notification) -> dict:
    return notification.model_dump(mode="json")


async def broadcast_notification(notification: Notification) -> int:
    """Send a notification to the user's connected clients. Returns delivered count."""
    clients = list(connected_clients.get(notification.user_id, ()))
    if not clients:
        return 0

    message = {"type": "notification", "data": serialize_notification(notification)}
    delivered = 0
    for client in clients:
        try:
            await client.send_json(message)
            delivered += 1
        except Exception as e:
            log.warning(f"Dropping notification client for {notification.user_id}: {e}")
            await unregister_client(notification.user_id, client)

    return delivered


# ============================================
# DISPATCHER
# ============================================

class NotificationDispatcher:
    """Persists and broadcasts notifications in background tasks."""

    def __init__(self, store: StatsStore, enabled: bool = True):
        self.store = store
        self.enabled = enabled
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(self, user_id: str, settings: Optional[UserSettings],
                 notifications: List[Notification]) -> int:
        """
        Schedule delivery and return immediately.

        Returns the number of notifications scheduled after applying the user's
        notification settings. Must be called from inside a running event loop.
        """
        if not self.enabled:
            return 0

        pending = [n for n in notifications if allowed_for(settings, n)]
        if not pending:
            return 0

        task = asyncio.create_task(self._deliver(user_id, pending))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return len(pending)

    async def _deliver(self, user_id: str, notifications: List[Notification]) -> None:
        for notification in notifications:
            try:
                saved = await self.store.save_notification(notification)
                await broadcast_notification(saved)
                log.info(f"Notified {user_id}: {saved.title}")
            except Exception as e:
                log.error(f"Failed to deliver notification to {user_id}: {e}")

    async def drain(self) -> None:
        """Wait for all scheduled deliveries to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def get_notifications(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        return await self.store.list_notifications(user_id, unread_only=unread_only)

    async def mark_read(self, user_id: str, notification_id: int) -> Optional[Notification]:
        return await self.store.mark_notification_read(user_id, notification_id)

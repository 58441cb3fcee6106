"""
Study Tracker - FastAPI Backend
Users, study sessions, statistics, achievements and analytics
"""

import json
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from achievements import catalog_as_dicts
from config import get_config_summary, get_server_config, get_stats_config, get_storage_config
from models import (
    AchievementProgress, AnalyticsPeriod, HealthStatus, Notification, SessionCompletion,
    SessionResult, StudySession, StudyStats, TimerStart, UserCreate, UserProfile, UserSettings
)
from notifications import NotificationDispatcher, register_client, unregister_client
from sessions import StudyService, TimerError, UserExistsError, UserNotFoundError
from stats_engine import InvalidSessionError
from store import StatsStore, create_store
from logger import logger


VERSION = "1.0.0"


def create_app(store: Optional[StatsStore] = None) -> FastAPI:
    """Build the API. Without a store, one is created from the storage configuration."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        storage = get_storage_config()
        active_store = store or create_store(
            storage.backend, storage.database_url,
            pool_min_size=storage.pool_min_size, pool_max_size=storage.pool_max_size
        )
        await active_store.connect()

        dispatcher = NotificationDispatcher(
            active_store, enabled=get_server_config().notification_delivery
        )
        app.state.store = active_store
        app.state.dispatcher = dispatcher
        app.state.service = StudyService(active_store, dispatcher, get_stats_config())

        logger.info(f"Server started (version {VERSION}, {active_store.name} storage)")
        yield
        await dispatcher.drain()
        await active_store.disconnect()
        logger.info("Server shut down")

    app = FastAPI(
        title="Study Tracker",
        description="Study sessions, streaks and achievements",
        version=VERSION,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_server_config().cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app


def _service(request: Request) -> StudyService:
    return request.app.state.service


def _not_found(user_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"User {user_id} not found")


def register_routes(app: FastAPI) -> None:

    # ============================================
    # HEALTH & STATUS
    # ============================================

    @app.get("/health", response_model=HealthStatus)
    @app.get("/api/health", response_model=HealthStatus)
    async def health_check(request: Request):
        """Check API health."""
        return HealthStatus(status="healthy", version=VERSION, storage=request.app.state.store.name)

    @app.get("/api/config")
    async def config_summary():
        return get_config_summary()

    # ============================================
    # USERS
    # ============================================

    @app.post("/api/users", response_model=UserProfile, status_code=201)
    async def create_user(data: UserCreate, request: Request):
        try:
            return await _service(request).create_user(data)
        except UserExistsError:
            raise HTTPException(status_code=400, detail="User already exists")

    @app.get("/api/users/{user_id}", response_model=UserProfile)
    async def get_user(user_id: str, request: Request):
        try:
            return await _service(request).get_user(user_id)
        except UserNotFoundError:
            raise _not_found(user_id)

    @app.put("/api/users/{user_id}/settings", response_model=UserProfile)
    async def update_settings(user_id: str, settings: UserSettings, request: Request):
        try:
            return await _service(request).update_settings(user_id, settings)
        except UserNotFoundError:
            raise _not_found(user_id)

    @app.get("/api/users/{user_id}/stats", response_model=StudyStats)
    async def get_stats(user_id: str, request: Request):
        try:
            return await _service(request).get_user_stats(user_id)
        except UserNotFoundError:
            raise _not_found(user_id)

    # ============================================
    # STUDY SESSIONS
    # ============================================

    @app.post("/api/users/{user_id}/sessions", response_model=SessionResult, status_code=201)
    async def complete_session(user_id: str, session: SessionCompletion, request: Request):
        """Record a completed study session."""
        try:
            return await _service(request).complete_session(user_id, session)
        except UserNotFoundError:
            raise _not_found(user_id)
        except InvalidSessionError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/api/users/{user_id}/sessions", response_model=List[StudySession])
    async def get_sessions(
        user_id: str,
        request: Request,
        days: int = Query(7, ge=1, le=3650),
        subject: Optional[str] = None,
        limit: int = Query(50, ge=1, le=500)
    ):
        try:
            return await _service(request).get_study_sessions(user_id, days, subject, limit)
        except UserNotFoundError:
            raise _not_found(user_id)

    # ============================================
    # TIMER
    # ============================================

    @app.get("/api/users/{user_id}/timer/status")
    async def timer_status(user_id: str, request: Request):
        timer = await _service(request).get_active_timer(user_id)
        return {"running": timer is not None, "timer": timer}

    @app.post("/api/users/{user_id}/timer/start")
    async def timer_start(user_id: str, data: TimerStart, request: Request):
        try:
            timer = await _service(request).start_timer(user_id, data.subject, data.session_type)
        except UserNotFoundError:
            raise _not_found(user_id)
        except TimerError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"success": True, "timer": timer, "message": f"Timer started for {timer.subject}"}

    @app.post("/api/users/{user_id}/timer/stop", response_model=SessionResult)
    async def timer_stop(user_id: str, request: Request):
        try:
            return await _service(request).stop_timer(user_id)
        except UserNotFoundError:
            raise _not_found(user_id)
        except (TimerError, InvalidSessionError) as e:
            raise HTTPException(status_code=400, detail=str(e))

    # ============================================
    # ACHIEVEMENTS
    # ============================================

    @app.get("/api/achievements")
    async def list_achievements():
        return catalog_as_dicts()

    @app.get("/api/users/{user_id}/achievements")
    async def get_user_achievements(user_id: str, request: Request):
        try:
            return await _service(request).get_achievements(user_id)
        except UserNotFoundError:
            raise _not_found(user_id)

    @app.get("/api/users/{user_id}/achievements/progress", response_model=List[AchievementProgress])
    async def get_achievement_progress(user_id: str, request: Request):
        try:
            return await _service(request).get_achievement_progress(user_id)
        except UserNotFoundError:
            raise _not_found(user_id)

    # ============================================
    # ANALYTICS
    # ============================================

    @app.get("/api/users/{user_id}/analytics")
    async def get_analytics(user_id: str, request: Request, period: AnalyticsPeriod = AnalyticsPeriod.WEEK):
        try:
            return await _service(request).get_analytics(user_id, period.value)
        except UserNotFoundError:
            raise _not_found(user_id)

    # ============================================
    # NOTIFICATIONS
    # ============================================

    @app.get("/api/users/{user_id}/notifications", response_model=List[Notification])
    async def get_notifications(user_id: str, request: Request, unread_only: bool = False):
        return await request.app.state.dispatcher.get_notifications(user_id, unread_only)

    @app.post("/api/users/{user_id}/notifications/{notification_id}/read", response_model=Notification)
    async def mark_notification_read(user_id: str, notification_id: int, request: Request):
        notification = await request.app.state.dispatcher.mark_read(user_id, notification_id)
        if notification is None:
            raise HTTPException(status_code=404, detail="Notification not found")
        return notification

    @app.websocket("/ws/notifications/{user_id}")
    async def notifications_socket(websocket: WebSocket, user_id: str):
        """Push notifications to a connected client as they are delivered."""
        await register_client(user_id, websocket)
        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    continue
                if not isinstance(message, dict):
                    continue

                cmd = message.get("command")
                if cmd == "ping":
                    await websocket.send_json({"type": "pong"})
                elif cmd == "mark_read":
                    await _ws_mark_read(websocket, user_id, message.get("notification_id"))
        except WebSocketDisconnect:
            pass
        finally:
            await unregister_client(user_id, websocket)


def _parse_notification_id(value) -> Optional[int]:
    """Notification ids arrive as JSON numbers or numeric strings."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


async def _ws_mark_read(websocket: WebSocket, user_id: str, raw_id) -> None:
    notif_id = _parse_notification_id(raw_id)
    if notif_id is None:
        await websocket.send_json({
            "type": "error",
            "command": "mark_read",
            "detail": "notification_id must be an integer"
        })
        return

    notification = await websocket.app.state.dispatcher.mark_read(user_id, notif_id)
    if notification is None:
        await websocket.send_json({
            "type": "error",
            "command": "mark_read",
            "notification_id": notif_id,
            "detail": "Notification not found"
        })
        return

    await websocket.send_json({
        "type": "ack",
        "command": "mark_read",
        "notification_id": notif_id
    })


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

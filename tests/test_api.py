"""
Tests for the HTTP API

Tests cover:
- Health and configuration endpoints
- User, session, achievement and analytics routes
- Error status codes
- The notification WebSocket
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from main import create_app
from notifications import build_streak_notification


@pytest.fixture
def client(store):
    with TestClient(create_app(store)) as c:
        yield c


@pytest.fixture
def user(client):
    response = client.post("/api/users", json={"user_id": "u1", "display_name": "Ada"})
    assert response.status_code == 201
    return response.json()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["storage"] == "memory"

    def test_config_hides_credentials(self, client):
        summary = client.get("/api/config").json()

        assert "postgres:postgres" not in summary["storage"]["database_host"]
        assert summary["stats"]["weekly_hours_mode"] == "cumulative"


class TestUsers:
    """User routes."""

    def test_create_and_get(self, client, user):
        assert user["stats"]["total_sessions"] == 0

        response = client.get("/api/users/u1")
        assert response.status_code == 200
        assert response.json()["display_name"] == "Ada"

    def test_duplicate(self, client, user):
        response = client.post("/api/users", json={"user_id": "u1", "display_name": "Ada"})

        assert response.status_code == 400
        assert response.json()["detail"] == "User already exists"

    def test_missing(self, client):
        assert client.get("/api/users/ghost").status_code == 404
        assert client.get("/api/users/ghost/stats").status_code == 404

    def test_update_settings(self, client, user):
        response = client.put("/api/users/u1/settings", json={"weekly_hours_target": 20})

        assert response.status_code == 200
        assert response.json()["settings"]["weekly_hours_target"] == 20

    def test_invalid_settings(self, client, user):
        response = client.put("/api/users/u1/settings", json={"study_days_of_week": [7]})
        assert response.status_code == 422


class TestSessions:
    """Recording and listing sessions."""

    def test_complete_session(self, client, user):
        response = client.post(
            "/api/users/u1/sessions",
            json={"subject": "Math", "duration_minutes": 90, "date": "2024-01-15"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["stats"]["total_hours"] == 1.5
        assert body["stats"]["weekly_hours"][1] == 1.5
        assert body["achievements_earned"][0]["achievement_id"] == "first_session"

        stats = client.get("/api/users/u1/stats").json()
        assert stats["current_streak"] == 1
        assert stats["last_study_date"] == "2024-01-15"

    @pytest.mark.parametrize("minutes", [0, -10])
    def test_non_positive_duration(self, client, user, minutes):
        response = client.post(
            "/api/users/u1/sessions",
            json={"subject": "Math", "duration_minutes": minutes, "date": "2024-01-15"},
        )
        assert response.status_code == 422

    def test_out_of_order(self, client, user):
        client.post("/api/users/u1/sessions", json={"subject": "Math", "duration_minutes": 30, "date": "2024-01-15"})
        response = client.post(
            "/api/users/u1/sessions", json={"subject": "Math", "duration_minutes": 30, "date": "2024-01-10"}
        )
        assert response.status_code == 400

    def test_unknown_user(self, client):
        response = client.post(
            "/api/users/ghost/sessions", json={"subject": "Math", "duration_minutes": 30}
        )
        assert response.status_code == 404

    def test_utc_start_time_accepted(self, client, user):
        response = client.post(
            "/api/users/u1/sessions",
            json={
                "subject": "Math",
                "duration_minutes": 30,
                "date": "2024-01-15",
                "start_time": "2024-01-15T08:00:00Z",
            },
        )

        assert response.status_code == 201
        assert not response.json()["session"]["start_time"].endswith("Z")

    def test_list_sessions(self, client, user):
        client.post("/api/users/u1/sessions", json={"subject": "Math", "duration_minutes": 30})

        response = client.get("/api/users/u1/sessions", params={"days": 1})

        assert response.status_code == 200
        assert len(response.json()) == 1


class TestTimer:
    def test_lifecycle(self, client, user):
        assert client.get("/api/users/u1/timer/status").json()["running"] is False

        started = client.post("/api/users/u1/timer/start", json={"subject": "Math"})
        assert started.status_code == 200
        assert client.get("/api/users/u1/timer/status").json()["running"] is True

        again = client.post("/api/users/u1/timer/start", json={"subject": "Math"})
        assert again.status_code == 400

        # Stopped straight away, so too short to record
        stopped = client.post("/api/users/u1/timer/stop")
        assert stopped.status_code == 400
        assert client.get("/api/users/u1/timer/status").json()["running"] is False

    def test_stop_without_timer(self, client, user):
        response = client.post("/api/users/u1/timer/stop")

        assert response.status_code == 400
        assert response.json()["detail"] == "No active timer"


class TestAchievementsAndAnalytics:
    def test_catalog(self, client):
        catalog = client.get("/api/achievements").json()
        assert [a["id"] for a in catalog][:2] == ["first_session", "streak_7"]

    def test_user_achievements(self, client, user):
        client.post("/api/users/u1/sessions", json={"subject": "Math", "duration_minutes": 30})

        view = client.get("/api/users/u1/achievements").json()
        progress = client.get("/api/users/u1/achievements/progress").json()

        assert view["summary"]["earned_achievements"] == 1
        assert progress[0]["is_complete"] is True

    def test_analytics(self, client, user):
        client.post("/api/users/u1/sessions", json={"subject": "Math", "duration_minutes": 60})

        report = client.get("/api/users/u1/analytics", params={"period": "month"}).json()

        assert report["period"] == "month"
        assert report["total_hours"] == 1.0

    def test_bad_period(self, client, user):
        response = client.get("/api/users/u1/analytics", params={"period": "decade"})
        assert response.status_code == 422


class TestNotifications:
    """Notification list, read marks and the WebSocket."""

    def test_mark_missing(self, client, user):
        response = client.post("/api/users/u1/notifications/99/read")
        assert response.status_code == 404

    def test_websocket_ping(self, client):
        with client.websocket_connect("/ws/notifications/u1") as ws:
            ws.send_text('{"command": "ping"}')
            assert ws.receive_json() == {"type": "pong"}

    def test_websocket_skips_non_object_messages(self, client):
        with client.websocket_connect("/ws/notifications/u1") as ws:
            ws.send_text("not json")
            ws.send_text("[1, 2]")
            ws.send_text('"ping"')
            ws.send_text('{"command": "ping"}')
            assert ws.receive_json() == {"type": "pong"}

    def test_websocket_mark_read(self, client, store):
        saved = asyncio.run(store.save_notification(build_streak_notification("u1", 3)))

        with client.websocket_connect("/ws/notifications/u1") as ws:
            ws.send_text(f'{{"command": "mark_read", "notification_id": {saved.id}}}')
            assert ws.receive_json() == {"type": "ack", "command": "mark_read", "notification_id": saved.id}

        unread = client.get("/api/users/u1/notifications", params={"unread_only": True}).json()
        assert unread == []

    def test_websocket_mark_read_numeric_string(self, client, store):
        saved = asyncio.run(store.save_notification(build_streak_notification("u1", 3)))

        with client.websocket_connect("/ws/notifications/u1") as ws:
            ws.send_text(f'{{"command": "mark_read", "notification_id": "{saved.id}"}}')
            assert ws.receive_json()["type"] == "ack"

        unread = client.get("/api/users/u1/notifications", params={"unread_only": True}).json()
        assert unread == []

    def test_websocket_mark_read_unknown_id(self, client):
        with client.websocket_connect("/ws/notifications/u1") as ws:
            ws.send_text('{"command": "mark_read", "notification_id": 99}')
            reply = ws.receive_json()

            assert reply["type"] == "error"
            assert reply["notification_id"] == 99

            # Socket stays open after an error reply
            ws.send_text('{"command": "ping"}')
            assert ws.receive_json() == {"type": "pong"}

    @pytest.mark.parametrize("raw_id", ['"abc"', "null", "true", "1.5"])
    def test_websocket_mark_read_invalid_id(self, client, raw_id):
        with client.websocket_connect("/ws/notifications/u1") as ws:
            ws.send_text(f'{{"command": "mark_read", "notification_id": {raw_id}}}')
            reply = ws.receive_json()

        assert reply["type"] == "error"
        assert reply["detail"] == "notification_id must be an integer"

"""
Integration Tests for FenceSense API
Tests the live coaching flow over REST and WebSocket.
"""

import pytest
import json

from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from main import app, sessions


@pytest.fixture
def client():
    """Create test client"""
    return TestClient(app)


@pytest.fixture
def session_id(client):
    """A fresh ENGARDE / FOIL session"""
    response = client.post("/api/sessions", json={"technique_id": "ENGARDE", "weapon": "FOIL"})
    assert response.status_code == 201
    session_id = response.json()["session_id"]
    yield session_id
    # Some tests delete the session themselves
    if session_id in {s.session_id for s in sessions.list()}:
        sessions.delete(session_id)


@pytest.fixture
def en_garde_payload(en_garde_pose):
    return en_garde_pose.to_dict()


class TestHealthEndpoints:
    """Test health check endpoints"""

    def test_root_endpoint(self, client):
        """Test root endpoint returns service info"""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "FenceSense" in data["service"]

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_live_endpoint(self, client):
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_health_ready_endpoint(self, client):
        """Readiness reports session capacity"""
        response = client.get("/health/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["max_sessions"] >= 1

    def test_correlation_header(self, client):
        """Every response carries a correlation id and timing"""
        response = client.get("/health", headers={"X-Correlation-ID": "abc123"})
        assert response.headers["X-Correlation-ID"] == "abc123"
        assert "X-Process-Time-Ms" in response.headers


class TestCatalogEndpoints:
    """Test technique and weapon catalogs"""

    def test_list_techniques(self, client):
        response = client.get("/api/techniques")
        assert response.status_code == 200
        techniques = {t["id"]: t for t in response.json()["techniques"]}
        assert len(techniques) == 17
        assert techniques["ENGARDE"]["ideal_ranges"]["torso_angle"] == {"min": 80, "max": 100}
        assert techniques["PARRY_4"]["ideal_ranges"]["guard_hand_position"]["x"] == {"min": 0.5, "max": 0.8}

    def test_list_weapons(self, client):
        response = client.get("/api/weapons")
        assert response.status_code == 200
        weapons = {w["id"]: w for w in response.json()["weapons"]}
        assert set(weapons) == {"FOIL", "EPEE", "SABRE"}
        assert weapons["SABRE"]["target_area"] == "Waist up"


class TestSessionEndpoints:
    """Test session lifecycle"""

    def test_create_with_defaults(self, client):
        response = client.post("/api/sessions")
        assert response.status_code == 201
        data = response.json()
        assert data["technique_id"] == "ENGARDE"
        assert data["weapon"]["id"] == "FOIL"
        client.delete(f"/api/sessions/{data['session_id']}")

    def test_create_with_alias(self, client):
        response = client.post("/api/sessions", json={"technique_id": "parry", "weapon": "épée"})
        assert response.status_code == 201
        data = response.json()
        assert data["technique_id"] == "PARRY_4"
        assert data["weapon"]["id"] == "EPEE"
        client.delete(f"/api/sessions/{data['session_id']}")

    def test_unknown_technique(self, client):
        response = client.post("/api/sessions", json={"technique_id": "FLYING_KICK"})
        assert response.status_code == 422
        data = response.json()
        assert data["error"] == "UNKNOWN_TECHNIQUE"
        assert "ENGARDE" in data["details"]["allowed"]

    def test_unknown_weapon(self, client):
        response = client.post("/api/sessions", json={"weapon": "broadsword"})
        assert response.status_code == 422
        assert response.json()["error"] == "UNKNOWN_WEAPON"

    def test_get_list_and_delete(self, client, session_id):
        assert client.get(f"/api/sessions/{session_id}").json()["session_id"] == session_id

        listed = [s["session_id"] for s in client.get("/api/sessions").json()["sessions"]]
        assert session_id in listed

        response = client.delete(f"/api/sessions/{session_id}")
        assert response.status_code == 200
        assert response.json()["deleted"] == session_id
        assert client.get(f"/api/sessions/{session_id}").status_code == 404

    def test_update_selection(self, client, session_id):
        response = client.put(f"/api/sessions/{session_id}/selection", json={"technique_id": "LUNGE"})
        assert response.status_code == 200
        assert response.json()["technique_id"] == "LUNGE"
        assert response.json()["weapon"]["id"] == "FOIL"

        response = client.put(f"/api/sessions/{session_id}/selection", json={"weapon": "sabre"})
        assert response.json()["weapon"]["id"] == "SABRE"

    def test_empty_selection_rejected(self, client, session_id):
        response = client.put(f"/api/sessions/{session_id}/selection", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"


class TestFrameAnalysis:
    """Test per-frame coaching over REST"""

    def test_en_garde_frame(self, client, session_id, en_garde_payload):
        response = client.post(f"/api/sessions/{session_id}/frames", json=en_garde_payload)
        assert response.status_code == 200
        data = response.json()

        assert data["frame_index"] == 1
        assert data["metrics"]["en_garde"] is True
        assert data["comparison"]["score"] >= 80
        assert data["feedback"] is not None
        assert not [i for i in data["feedback"]["items"] if i["priority"] == "high"]
        assert len(data["skeleton"]) == 12

    def test_empty_frame(self, client, session_id):
        """A frame with no detected person is acknowledged without a score"""
        response = client.post(f"/api/sessions/{session_id}/frames", json={"keypoints": []})
        assert response.status_code == 200
        data = response.json()
        assert data["pose"] is None
        assert data["comparison"] is None

    def test_malformed_keypoints(self, client, session_id):
        response = client.post(
            f"/api/sessions/{session_id}/frames",
            json={"keypoints": [{"x": "left", "y": 1}]},
        )
        assert response.status_code == 422
        data = response.json()
        assert data["error"] == "VALIDATION_ERROR"
        assert data["validation_errors"]

    def test_too_many_unnamed_keypoints(self, client, session_id):
        keypoints = [{"x": i, "y": i, "score": 0.9} for i in range(18)]
        response = client.post(f"/api/sessions/{session_id}/frames", json={"keypoints": keypoints})
        assert response.status_code == 422
        assert response.json()["error"] == "INVALID_POSE_DATA"

    def test_progress_after_frames(self, client, session_id, en_garde_payload):
        for _ in range(3):
            client.post(f"/api/sessions/{session_id}/frames", json=en_garde_payload)

        response = client.get(f"/api/sessions/{session_id}/progress")
        assert response.status_code == 200
        data = response.json()
        assert data["total_sessions"] == 3
        assert data["best_scores"]["ENGARDE"]["score"] >= 80
        assert data["last_session"]["technique_id"] == "ENGARDE"


class TestWebSocketStreams:
    """Test the live WebSocket streams"""

    def test_pose_stream(self, client, session_id, en_garde_payload):
        with client.websocket_connect(f"/ws/sessions/{session_id}") as ws:
            ws.send_text(json.dumps(en_garde_payload))
            first = ws.receive_json()
            ws.send_text(json.dumps(en_garde_payload))
            second = ws.receive_json()

        assert first["session_id"] == session_id
        assert first["comparison"]["score"] >= 80
        assert second["frame_index"] == 2

    def test_pose_stream_reports_bad_message(self, client, session_id, en_garde_payload):
        """A bad message gets an error reply and the stream keeps going"""
        with client.websocket_connect(f"/ws/sessions/{session_id}") as ws:
            ws.send_text("{not json")
            error = ws.receive_json()
            ws.send_text(json.dumps(en_garde_payload))
            result = ws.receive_json()

        assert error["error"] == "POSE_DETECTION_ERROR"
        assert result["frame_index"] == 1

    def test_pose_stream_reports_binary_message(self, client, session_id, en_garde_payload):
        """Binary messages are rejected without closing the stream"""
        with client.websocket_connect(f"/ws/sessions/{session_id}") as ws:
            ws.send_bytes(b"\x89PNG")
            error = ws.receive_json()
            ws.send_text(json.dumps(en_garde_payload))
            result = ws.receive_json()

        assert error["error"] == "INVALID_POSE_DATA"
        assert result["frame_index"] == 1

    def test_unknown_session_closes(self, client):
        with client.websocket_connect("/ws/sessions/nonexistent") as ws:
            error = ws.receive_json()
            assert error["error"] == "SESSION_NOT_FOUND"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()
        assert exc_info.value.code == 4404

    def test_video_stream_without_model(self, client, session_id):
        """Video needs a configured pose model"""
        with client.websocket_connect(f"/ws/sessions/{session_id}/video") as ws:
            error = ws.receive_json()
            assert error["error"] == "SERVICE_UNAVAILABLE"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()
        assert exc_info.value.code == 1013


class TestErrorHandling:
    """Test error handling and responses"""

    def test_error_response_format(self, client):
        """Test that error responses have consistent format"""
        response = client.get("/api/sessions/nonexistent")
        assert response.status_code == 404
        data = response.json()

        assert data["error"] == "SESSION_NOT_FOUND"
        assert "detail" in data
        assert data["path"] == "/api/sessions/nonexistent"

    def test_unknown_route(self, client):
        response = client.get("/api/nothing-here")
        assert response.status_code == 404
        assert response.json()["error"] == "HTTP_ERROR"


class TestCORS:
    """Test CORS configuration"""

    def test_cors_preflight(self, client):
        response = client.options(
            "/api/sessions",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST"
            }
        )
        assert response.status_code in [200, 204, 405]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

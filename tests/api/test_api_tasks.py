"""Tests for the task WebSocket, run through the real application lifespan."""

import pytest
from starlette.testclient import TestClient

from dqengine.api.main import app


def _configure(monkeypatch, db_path, simulated_delay: str) -> None:
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("SIMULATED_RESPONSE_DELAY_SECONDS", simulated_delay)
    monkeypatch.setenv("GENERIC_RESPONSE_DELAY_SECONDS", "0")


@pytest.fixture
def socket_client(seeded_db_path, monkeypatch):
    _configure(monkeypatch, seeded_db_path, "0")
    with TestClient(app) as client:
        yield client


@pytest.fixture
def slow_socket_client(seeded_db_path, monkeypatch):
    """Simulated collaborators answer after half a second."""
    _configure(monkeypatch, seeded_db_path, "0.5")
    with TestClient(app) as client:
        yield client


def _receive_until_response(ws) -> list[dict]:
    frames = []
    while True:
        frame = ws.receive_json()
        frames.append(frame)
        if frame["event"] == "agent-message":
            return frames


class TestTaskSocket:
    def test_invalid_json_frame(self, socket_client: TestClient) -> None:
        with socket_client.websocket_connect("/ws/dashboard") as ws:
            ws.send_text("{not json")
            frame = ws.receive_json()
        assert frame["event"] == "error"
        assert frame["data"]["error"] == "Frame is not valid JSON"

    def test_invalid_envelope(self, socket_client: TestClient) -> None:
        with socket_client.websocket_connect("/ws/dashboard") as ws:
            ws.send_json({"payload": {"task": "identify-data-issues"}})
            frame = ws.receive_json()
        assert frame["event"] == "error"
        assert frame["data"]["error"] == "Invalid task envelope"
        assert any(d["loc"] == ["to"] for d in frame["data"]["details"])

    def test_task_round_trip(self, socket_client: TestClient) -> None:
        with socket_client.websocket_connect("/ws/dashboard") as ws:
            ws.send_json(
                {
                    "to": "data-quality-agent",
                    "type": "task",
                    "payload": {"task": "validate-data-integrity", "parameters": {}},
                    "correlationId": "ws-1",
                }
            )
            frames = _receive_until_response(ws)

        progress = [f["data"]["progress"] for f in frames if f["event"] == "assessment-progress"]
        assert progress[0] == 10
        assert progress[-1] == 100
        response = frames[-1]["data"]
        assert response["to"] == "dashboard"
        assert response["from"] == "data-quality-agent"
        assert response["correlationId"] == "ws-1"
        assert response["payload"]["success"] is True
        assert response["payload"]["result"]["data"]["integrity_score"] == 100

    def test_completion_notice_for_other_clients(self, socket_client: TestClient) -> None:
        with socket_client.websocket_connect("/ws/monitor") as monitor:
            with socket_client.websocket_connect("/ws/dashboard") as ws:
                ws.send_json(
                    {
                        "to": "database-manager",
                        "payload": {"task": "backup"},
                        "correlationId": "ws-2",
                    }
                )
                frames = _receive_until_response(ws)
                notice = monitor.receive_json()

        assert frames[-1]["data"]["payload"]["result"]["message"] == (
            "Database backup completed"
        )
        assert notice["event"] == "task-completed"
        assert notice["data"]["correlationId"] == "ws-2"
        assert notice["data"]["to"] == "dashboard"

    def test_sender_is_the_connection(self, socket_client: TestClient) -> None:
        with socket_client.websocket_connect("/ws/dashboard") as ws:
            ws.send_json(
                {
                    "from": "someone-else",
                    "to": "database-manager",
                    "payload": {"task": "backup"},
                    "correlationId": "ws-3",
                }
            )
            frames = _receive_until_response(ws)

        response = frames[-1]["data"]
        assert response["to"] == "dashboard"
        assert response["correlationId"] == "ws-3"

    def test_duplicate_correlation_id_rejected(
        self, slow_socket_client: TestClient,
    ) -> None:
        envelope = {
            "to": "database-manager",
            "payload": {"task": "backup"},
            "correlationId": "ws-4",
        }
        with slow_socket_client.websocket_connect("/ws/dashboard") as ws:
            ws.send_json(envelope)
            ws.send_json(envelope)
            frames = _receive_until_response(ws)

        errors = [f for f in frames if f["event"] == "error"]
        assert len(errors) == 1
        assert errors[0]["data"]["error"] == (
            "Task 'ws-4' from 'dashboard' is already in flight"
        )
        responses = [f for f in frames if f["event"] == "agent-message"]
        assert len(responses) == 1
        assert responses[0]["data"]["payload"]["success"] is True

"""Tests for the FastAPI endpoints."""

from __future__ import annotations

import time
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from src.runner import ConversationError, TurnResult
from src.server import app


@pytest.fixture
def mock_runner():
    """Create a mock runner and attach it to app state (mirrors the lifespan)."""
    runner = MagicMock()
    runner.run_turn.return_value = TurnResult(
        response="Hello! I'm the Sales Agent. How can I help?", session_id="session-1",
    )

    # Attach to app state the same way the lifespan does
    app.state.runner = runner
    yield runner
    # Clean up
    app.state.runner = None


@pytest.fixture
def client(mock_runner):
    """FastAPI test client with the mock runner wired up."""
    return TestClient(app)


def _chat_body(**overrides) -> dict:
    body = {"messages": [{"role": "user", "content": "Hello!"}], "agentType": "sales"}
    body.update(overrides)
    return body


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "agentic-services"


class TestAgentsEndpoint:
    def test_lists_four_specialists(self, client):
        data = client.get("/api/agents").json()
        assert [a["key"] for a in data] == ["sales", "support", "navigator", "assistant"]
        assert "checkout" in data[0]["tools"]


class TestChatEndpoint:
    def test_chat_returns_response(self, client):
        response = client.post("/api/agent/chat", json=_chat_body())
        assert response.status_code == 200
        data = response.json()
        assert data["response"].startswith("Hello!")
        assert data["sessionId"] == "session-1"

    def test_chat_passes_history_route_session_and_token(self, client, mock_runner):
        history = [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "show laptops"},
        ]
        client.post(
            "/api/agent/chat",
            json=_chat_body(messages=history, sessionId="abc"),
            headers={"Authorization": "Bearer jwt-123"},
        )
        messages, agent_type, session_id, token = mock_runner.run_turn.call_args.args
        assert messages == history
        assert (agent_type, session_id, token) == ("sales", "abc", "jwt-123")

    def test_missing_authorization_is_anonymous(self, client, mock_runner):
        client.post("/api/agent/chat", json=_chat_body())
        assert mock_runner.run_turn.call_args.args[3] is None

    def test_agent_type_is_optional(self, client, mock_runner):
        response = client.post("/api/agent/chat", json={"messages": [{"role": "user", "content": "hi"}]})
        assert response.status_code == 200
        assert mock_runner.run_turn.call_args.args[1] is None

    @pytest.mark.parametrize(
        "body",
        [
            {"messages": []},
            {"messages": [{"role": "user", "content": ""}]},
            {"messages": [{"role": "system", "content": "hi"}]},
            {"messages": [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "yo"}]},
            {},
        ],
    )
    def test_invalid_body_is_400_with_error(self, client, mock_runner, body):
        response = client.post("/api/agent/chat", json=body)
        assert response.status_code == 400
        assert response.json()["error"]
        mock_runner.run_turn.assert_not_called()

    def test_conversation_error_is_500_with_message(self, client, mock_runner):
        mock_runner.run_turn.side_effect = ConversationError("Sorry, step limit.")
        response = client.post("/api/agent/chat", json=_chat_body())
        assert response.status_code == 500
        assert response.json() == {"error": "Sorry, step limit."}

    def test_chat_handles_unexpected_error(self, client, mock_runner):
        mock_runner.run_turn.side_effect = RuntimeError("LLM exploded")
        response = client.post("/api/agent/chat", json=_chat_body())
        assert response.status_code == 500
        # Verify we do NOT leak the internal error message to the client
        error = response.json()["error"]
        assert "LLM exploded" not in error
        assert "internal error" in error.lower()

    @patch("src.api.routes.TURN_TIMEOUT_SECONDS", 0.05)
    def test_slow_turn_times_out(self, client, mock_runner):
        mock_runner.run_turn.side_effect = lambda *args: time.sleep(0.5)
        response = client.post("/api/agent/chat", json=_chat_body())
        assert response.status_code == 504
        assert "too long" in response.json()["error"]

    def test_response_includes_request_id_header(self, client):
        response = client.post("/api/agent/chat", json=_chat_body())
        assert "X-Request-ID" in response.headers

    def test_client_supplied_request_id_is_echoed(self, client):
        response = client.post(
            "/api/agent/chat", json=_chat_body(), headers={"X-Request-ID": "my-trace-id-123"},
        )
        assert response.headers["X-Request-ID"] == "my-trace-id-123"

    def test_unknown_route_uses_error_envelope(self, client):
        response = client.get("/api/nope")
        assert response.status_code == 404
        assert "error" in response.json()


class TestRunnerNotReady:
    def test_returns_503_when_runner_not_initialised(self):
        """If the runner hasn't been set via lifespan, return 503."""
        with patch("src.server.build_runner", return_value=MagicMock()):
            # Enter the test client (triggers lifespan), then wipe the runner
            # to simulate the state before lifespan completes.
            with TestClient(app) as tc:
                app.state.runner = None
                response = tc.post("/api/agent/chat", json=_chat_body())
        assert response.status_code == 503
        assert "starting up" in response.json()["error"].lower()


class TestRootEndpoint:
    def test_root_returns_service_info(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "Agentic Services"
        assert data["chat"] == "/api/agent/chat"

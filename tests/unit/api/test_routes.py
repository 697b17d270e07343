"""
Tests for the HTTP API.

Organization
------------
- TestChatEndpoint: POST /v1/chat and its error mapping
- TestChatStreamEndpoint: POST /v1/chat/stream framing
- TestHealthEndpoints: GET /v1/health and breaker reset
- TestChatRequest: Request model validation
"""

import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from hybridrag.api.app import create_app
from hybridrag.api.routes.chat import ChatRequest, Message
from hybridrag.core.exceptions import CircuitOpenError

QUESTION = "What is the population of Kerala?"


# ============================================================================
# Test Helpers
# ============================================================================


@pytest.fixture
def api_service(service, kerala_doc):
    service.ingest_text(kerala_doc, "kerala.md")
    return service


@pytest.fixture
def client(api_service) -> TestClient:
    return TestClient(create_app(api_service))


def _parse_sse(body: str):
    events = []
    for frame in body.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in frame.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


# ============================================================================
# Test Classes
# ============================================================================


class TestChatEndpoint:
    """Tests for POST /v1/chat."""

    def test_answer(self, client):
        response = client.post("/v1/chat", json={"question": QUESTION})

        assert response.status_code == 200
        data = response.json()
        assert "33 million" in data["answer"]
        assert data["sources"][0]["source"] == "kerala.md"
        assert data["analysis"]["queryType"] == "FACTUAL"
        assert data["cached"] is False

    def test_second_request_cached(self, client):
        client.post("/v1/chat", json={"question": QUESTION})

        assert client.post("/v1/chat", json={"question": QUESTION}).json()["cached"] is True

    def test_message_history(self, client, api_service):
        with patch.object(api_service, "call_chain", wraps=api_service.call_chain) as call_chain:
            client.post(
                "/v1/chat",
                json={
                    "question": "What is its population?",
                    "chat_history": [
                        {"role": "user", "content": "Tell me about Kerala"},
                        {"role": "assistant", "content": "Kerala is a state."},
                    ],
                    "session_id": "s1",
                },
            )

        kwargs = call_chain.call_args.kwargs
        assert kwargs["chat_history"] == "User: Tell me about Kerala\nAssistant: Kerala is a state."
        assert kwargs["session_id"] == "s1"

    def test_blank_question_is_400(self, client):
        response = client.post("/v1/chat", json={"question": "   "})

        assert response.status_code == 400
        assert response.json()["detail"]["error_type"] == "VALIDATION_ERROR"

    def test_empty_question_is_422(self, client):
        assert client.post("/v1/chat", json={"question": ""}).status_code == 422

    def test_circuit_open_is_503(self, client, api_service):
        error = CircuitOpenError("Circuit breaker is OPEN", retry_after_seconds=12.5)
        with patch.object(api_service, "call_chain", side_effect=error):
            response = client.post("/v1/chat", json={"question": QUESTION})

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "13"
        detail = response.json()["detail"]
        assert detail["error_type"] == "VECTOR_DB_ERROR"
        assert detail["retry_after_seconds"] == 12.5

    def test_unexpected_error_is_500_without_detail_leak(self, client, api_service):
        with patch.object(api_service, "call_chain", side_effect=RuntimeError("secret /etc/path")):
            response = client.post("/v1/chat", json={"question": QUESTION})

        assert response.status_code == 500
        assert "secret" not in response.text


class TestChatStreamEndpoint:
    """Tests for POST /v1/chat/stream."""

    def test_event_stream(self, client):
        response = client.post("/v1/chat/stream", json={"question": QUESTION})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _parse_sse(response.text)
        assert [name for name, _ in events[:2]] == ["search_start", "search_complete"]
        assert events[-1][0] == "done"
        assert "33 million" in "".join(data["text"] for name, data in events if name == "content")

    def test_blank_question_is_400_before_streaming(self, client, api_service):
        with patch.object(api_service, "stream_chain") as stream_chain:
            response = client.post("/v1/chat/stream", json={"question": "   "})

        assert response.status_code == 400
        assert response.json()["detail"]["error_type"] == "VALIDATION_ERROR"
        stream_chain.assert_not_called()

    def test_blank_question_rejected_on_both_endpoints(self, client):
        for path in ("/v1/chat", "/v1/chat/stream"):
            assert client.post(path, json={"question": " \n\t "}).status_code == 400

    def test_pipeline_failure_becomes_error_event(self, client, api_service):
        error = CircuitOpenError("Circuit open", retry_after_seconds=30.0)
        with patch.object(api_service.engine, "intelligent_search", side_effect=error):
            events = _parse_sse(client.post("/v1/chat/stream", json={"question": QUESTION}).text)

        assert [name for name, _ in events] == ["search_start", "error"]
        assert events[-1][1]["error_type"] == "VECTOR_DB_ERROR"
        assert events[-1][1]["retry_after_seconds"] == 30.0


class TestHealthEndpoints:
    def test_health(self, client):
        response = client.get("/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"]
        assert data["stats"]["search"]["circuit_breaker"]["state"] == "CLOSED"

    def test_reset_circuit_breaker(self, client):
        response = client.post("/v1/admin/circuit-breaker/reset")

        assert response.status_code == 200
        assert response.json()["reset"] is True
        assert response.json()["circuit_breaker"]["state"] == "CLOSED"


class TestChatRequest:
    def test_string_transcript(self):
        assert ChatRequest(question="q", chat_history="User: hi").transcript == "User: hi"

    def test_ai_role_rendered_as_assistant(self):
        request = ChatRequest(question="q", chat_history=[Message(role="ai", content="hello")])

        assert request.transcript == "Assistant: hello"

    def test_history_bounded(self, client):
        history = [{"role": "user", "content": "hi"}] * 51

        response = client.post("/v1/chat", json={"question": QUESTION, "chat_history": history})

        assert response.status_code == 422

    def test_unknown_role(self, client):
        history = [{"role": "tool", "content": "x"}]

        response = client.post("/v1/chat", json={"question": QUESTION, "chat_history": history})

        assert response.status_code == 422

"""Tests for the /suggestions endpoints.

The shared service is replaced through dependency overrides with one that
talks to a scripted transport.
"""

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_request_log, get_suggestion_service
from api.main import create_app
from parley.history import ConversationHistory
from parley.suggestions import SuggestionService
from tests.helpers import BAD_RESPONSE, GOOD_RESPONSE, FakeTransport

GOOD_OPTIONS = ["Sounds good!", "What time?", "Can't make it, sorry"]


@pytest.fixture
def make_client(config, ai_log):
    def factory(*script, config=config, history=None):
        transport = FakeTransport(*script)
        service = SuggestionService(config, transport, ai_log=ai_log, history=history)
        app = create_app()
        app.dependency_overrides[get_suggestion_service] = lambda: service
        app.dependency_overrides[get_request_log] = lambda: ai_log
        return TestClient(app), transport

    return factory


def suggestion_body(**overrides):
    body = {"message": "Dinner tonight?", "sender_id": "alice", "sender_name": "Alice"}
    body.update(overrides)
    return body


class TestCreateSuggestions:
    """Tests for POST /suggestions."""

    def test_returns_options(self, make_client):
        client, transport = make_client(GOOD_RESPONSE)

        response = client.post("/suggestions", json=suggestion_body())

        assert response.status_code == 200
        assert response.json() == {"options": GOOD_OPTIONS, "suppressed": False}
        assert len(transport.calls) == 1

    def test_suppressed(self, make_client, config):
        client, transport = make_client(
            GOOD_RESPONSE, config=config.model_copy(update={"ai_enabled": False})
        )

        response = client.post("/suggestions", json=suggestion_body())

        assert response.status_code == 200
        assert response.json() == {"options": [], "suppressed": True}
        assert transport.calls == []

    def test_context_is_forwarded(self, make_client):
        client, transport = make_client(GOOD_RESPONSE)
        context = [
            {"sender_name": "Alice", "content": "Hey!"},
            {"sender_name": "Me", "content": "Hi", "is_self": True},
        ]

        client.post("/suggestions", json=suggestion_body(context=context))

        roles = [m["role"] for m in transport.calls[0]["body"]["messages"]]
        assert roles == ["system", "user", "assistant", "user"]

    def test_out_of_range_timestamp(self, make_client):
        client, transport = make_client(GOOD_RESPONSE)
        context = [{"sender_name": "Alice", "content": "Hey!", "timestamp": 10**18}]

        response = client.post(
            "/suggestions", json=suggestion_body(timestamp=10**18, context=context)
        )

        assert response.status_code == 200
        messages = transport.calls[0]["body"]["messages"]
        assert messages[1]["content"] == "Alice: Hey!"
        assert messages[-1]["content"].endswith("Dinner tonight?")

    def test_blank_message(self, make_client):
        client, _ = make_client(GOOD_RESPONSE)

        response = client.post("/suggestions", json=suggestion_body(message="   "))

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "ValidationError"
        assert data["code"] == "VAL_MISSING_REQUIRED"
        assert data["details"] == {"field": "message"}

    def test_empty_message_fails_schema(self, make_client):
        client, _ = make_client(GOOD_RESPONSE)
        response = client.post("/suggestions", json=suggestion_body(message=""))
        assert response.status_code == 422

    def test_rate_limited(self, make_client):
        client, transport = make_client((429, "slow down"))

        response = client.post("/suggestions", json=suggestion_body())

        assert response.status_code == 429
        assert response.json()["code"] == "HTTP_RATE_LIMITED"
        assert len(transport.calls) == 1

    def test_upstream_error(self, make_client):
        client, _ = make_client((500, "upstream exploded"))

        response = client.post("/suggestions", json=suggestion_body())

        assert response.status_code == 502
        data = response.json()
        assert data["code"] == "HTTP_STATUS"
        assert data["details"]["status_code"] == 500

    def test_retries_exhausted(self, make_client):
        client, transport = make_client(BAD_RESPONSE)

        response = client.post("/suggestions", json=suggestion_body())

        assert response.status_code == 503
        data = response.json()
        assert data["code"] == "RSP_RETRIES_EXHAUSTED"
        assert data["details"]["attempts"] == 5
        assert data["details"]["last_error_code"] == "RSP_INSUFFICIENT_OPTIONS"
        assert len(transport.calls) == 5

    def test_missing_configuration(self, make_client, config):
        client, transport = make_client(
            GOOD_RESPONSE, config=config.model_copy(update={"endpoint_url": ""})
        )

        response = client.post("/suggestions", json=suggestion_body())

        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "CFG_MISSING"
        assert data["details"]["config_key"] == "endpoint_url"
        assert transport.calls == []


class TestHistory:
    """Tests for POST /suggestions/history."""

    def test_recorded_history_is_used(self, make_client):
        client, transport = make_client(GOOD_RESPONSE, history=ConversationHistory(10))

        for content in ("Hey!", "Are you around?"):
            response = client.post(
                "/suggestions/history",
                json={"sender_id": "alice", "message": {"sender_name": "Alice", "content": content}},
            )
            assert response.status_code == 200

        data = response.json()
        assert data["conversation"] == "user:alice"
        assert [m["content"] for m in data["messages"]] == ["Hey!", "Are you around?"]

        client.post("/suggestions", json=suggestion_body())
        assert len(transport.calls[0]["body"]["messages"]) == 4

    def test_group_history(self, make_client):
        client, _ = make_client(GOOD_RESPONSE, history=ConversationHistory(10))

        response = client.post(
            "/suggestions/history",
            json={
                "sender_id": "alice",
                "group_id": "g1",
                "message": {"sender_name": "Alice", "content": "Hi all"},
            },
        )

        assert response.json()["conversation"] == "group:g1"

    def test_history_disabled(self, make_client):
        client, _ = make_client(GOOD_RESPONSE)

        response = client.post(
            "/suggestions/history",
            json={"sender_id": "alice", "message": {"sender_name": "Alice", "content": "Hi"}},
        )

        assert response.status_code == 400


class TestRequestLog:
    """Tests for GET/DELETE /suggestions/log."""

    def test_log_lists_and_clears_entries(self, make_client):
        client, _ = make_client(GOOD_RESPONSE)
        client.post("/suggestions", json=suggestion_body())

        entries = client.get("/suggestions/log").json()["entries"]
        assert len(entries) == 1
        assert entries[0]["level"] == "success"
        assert entries[0]["message"] == "Generated 3 options for: Dinner tonight?"

        assert client.delete("/suggestions/log").status_code == 204
        assert client.get("/suggestions/log").json() == {"entries": []}

    def test_errors_are_logged(self, make_client):
        client, _ = make_client((500, "upstream exploded"))
        client.post("/suggestions", json=suggestion_body())

        entries = client.get("/suggestions/log").json()["entries"]
        assert entries[-1]["level"] == "error"
        assert entries[-1]["url"] == "https://llm.example.test/v1/chat/completions"

"""
Tests for the HTTP surface. Runs in mock mode against a temporary database.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from support_bot.config import get_settings
from support_bot.server import create_app


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    get_settings.cache_clear()

    with TestClient(create_app()) as client:
        yield client

    get_settings.cache_clear()


def post_message(client, text, identity="42"):
    return client.post("/api/messages", json={"identity": identity, "text": text, "first_name": "Jo"})


class TestHealth:

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["mode"] == "mock"


class TestMessages:

    def test_greeting_is_answered(self, client):
        response = post_message(client, "hello")

        assert response.status_code == 200
        body = response.json()
        assert body["outcome"] == "model_answered"
        assert body["ticket_id"] is None
        assert body["markup"] is True

    def test_unknown_question_is_escalated(self, client):
        body = post_message(client, "my router keeps rebooting").json()

        assert body["outcome"] == "model_answered"
        assert body["ticket_id"] is not None
        assert f"#{body['ticket_id']}" in body["reply"]

    def test_policy_rejection(self, client):
        body = post_message(client, "this is spam").json()

        assert body["outcome"] == "rejected_policy"

    def test_invalid_payload(self, client):
        response = client.post("/api/messages", json={"identity": "42"})

        assert response.status_code == 422


class TestStats:

    def test_overall_stats(self, client):
        post_message(client, "hello")
        post_message(client, "my router keeps rebooting")

        stats = client.get("/api/stats").json()

        assert stats["users"] == 1
        assert stats["total_requests"] == 2
        assert stats["messages"] == 4
        assert stats["tickets"]["total"] == 1
        assert stats["tickets"]["new"] == 1
        assert stats["last_activity"] is not None

    def test_period_stats(self, client):
        post_message(client, "my router keeps rebooting")
        today = datetime.now(timezone.utc).date()

        response = client.get(
            "/api/stats",
            params={"start": (today - timedelta(days=1)).isoformat(), "end": (today + timedelta(days=1)).isoformat()},
        )

        assert response.status_code == 200
        stats = response.json()
        assert stats["new_users"] == 1
        assert stats["tickets"] == 1
        assert sum(stats["tickets_by_day"].values()) == 1

    def test_period_needs_both_bounds(self, client):
        response = client.get("/api/stats", params={"start": "2024-01-01"})

        assert response.status_code == 422


class TestFaqs:

    def test_empty_corpus(self, client):
        response = client.get("/api/faqs")

        assert response.status_code == 200
        assert response.json() == []

"""
Tests for the candle endpoints.

Tests cover:
- GET /api/candles seeding and ordering
- POST /api/candles outcomes (accepted, validation, moderation, storage)
- POST /api/moderate
- Health, metrics and request id header
"""

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from candlewall.errors import ModerationUnavailable
from candlewall.main import create_app
from candlewall.message_store import FALLBACK_MESSAGES, MessageStore
from candlewall.moderation import ModerationGateway
from candlewall.service import CandleWall, SubmissionStatus
from candlewall.storage import SqlKeyValueStore, create_db_engine


def light(client, message):
    return client.post("/api/candles", json={"message": message})


def sample(name, **labels):
    """Current value of a metric sample, 0 if never recorded."""
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestListCandles:
    """GET /api/candles."""

    def test_empty_store_returns_fallback(self, client):
        """Scenario A: first read returns and stores the 11 starter messages."""
        response = client.get("/api/candles")

        assert response.status_code == 200
        data = response.json()
        assert data["messages"] == list(FALLBACK_MESSAGES)
        assert data["count"] == 11

    def test_store_contains_fallback_after_first_read(self, client, kv):
        client.get("/api/candles")

        assert kv.lrange("candles:messages") == list(FALLBACK_MESSAGES)

    def test_response_includes_request_id_header(self, client):
        response = client.get("/api/candles")

        assert "x-request-id" in response.headers


class TestLightCandle:
    """POST /api/candles."""

    def test_safe_message_is_stored(self, client):
        """Scenario B."""
        before = client.get("/api/candles").json()["messages"]

        response = light(client, "Vi saknar dig.")

        assert response.status_code == 201
        assert response.json() == {"accepted": True, "status": "accepted", "reason": None}
        after = client.get("/api/candles").json()["messages"]
        assert after == before + ["Vi saknar dig."]

    def test_unsafe_message_is_not_stored(self, client, classifier):
        """Scenario C."""
        classifier.reply = "UNSAFE"
        before = client.get("/api/candles").json()["count"]

        response = light(client, "spam spam buy now")

        assert response.status_code == 422
        data = response.json()
        assert data["accepted"] is False
        assert data["status"] == "moderation_rejected"
        assert client.get("/api/candles").json()["count"] == before

    def test_classifier_error_is_rejection(self, client, classifier):
        """Scenario D."""
        classifier.error = ConnectionError("network down")
        before = client.get("/api/candles").json()["count"]

        response = light(client, "Vi tänker på dig.")

        assert response.status_code == 422
        assert response.json()["status"] == "moderation_rejected"
        assert client.get("/api/candles").json()["count"] == before

    def test_classifier_timeout_is_rejection(self, client, classifier):
        classifier.error = ModerationUnavailable("timed out", "timeout")

        response = light(client, "Vi tänker på dig.")

        assert response.json()["status"] == "moderation_rejected"

    @pytest.mark.parametrize("reply", ["`SAFE`", "safe", "`SAFE`."])
    def test_decorated_safe_replies_accepted(self, client, classifier, reply):
        classifier.reply = reply

        assert light(client, "Ljus för dig.").status_code == 201

    @pytest.mark.parametrize("reply", ["I cannot classify", "", "NOT SAFE"])
    def test_other_replies_rejected(self, client, classifier, reply):
        classifier.reply = reply

        assert light(client, "Ljus för dig.").json()["status"] == "moderation_rejected"

    def test_max_length_accepted(self, client, classifier):
        response = light(client, "a" * 150)

        assert response.status_code == 201
        assert len(classifier.calls) == 1

    def test_too_long_rejected_before_moderation(self, client, classifier):
        response = light(client, "a" * 151)

        assert response.status_code == 400
        assert response.json()["status"] == "validation_rejected"
        assert classifier.calls == []

    def test_padded_too_long_rejected_before_moderation(self, client, classifier):
        response = light(client, "a" * 150 + " ")

        assert response.status_code == 400
        assert response.json()["status"] == "validation_rejected"
        assert classifier.calls == []

    @pytest.mark.parametrize("message", ["", "   ", "\n"])
    def test_whitespace_rejected(self, client, classifier, message):
        response = light(client, message)

        assert response.status_code == 400
        assert classifier.calls == []

    def test_missing_message_rejected(self, client, classifier):
        response = client.post("/api/candles", json={})

        assert response.status_code == 400
        assert classifier.calls == []

    def test_submissions_append_in_order(self, client):
        start = client.get("/api/candles").json()["messages"]
        texts = ["Ett ljus", "Ett till", "Ett ljus"]

        for text in texts:
            assert light(client, text).status_code == 201

        assert client.get("/api/candles").json()["messages"] == start + texts

    def test_storage_failure_reported(self, classifier):
        kv = SqlKeyValueStore(create_db_engine("sqlite://"))
        wall = CandleWall(MessageStore(kv), ModerationGateway(classifier))
        # tables are never created, so every storage call fails
        outcome = wall.submit_message("Vi saknar dig.")

        assert outcome.status is SubmissionStatus.SERVICE_UNAVAILABLE
        assert not outcome.accepted
        assert wall.list_messages() == list(FALLBACK_MESSAGES)


class TestModerate:
    """POST /api/moderate."""

    def test_safe(self, client):
        response = client.post("/api/moderate", json={"message": "Vi saknar dig."})

        assert response.status_code == 200
        assert response.json() == {"result": "SAFE"}

    def test_error_is_unsafe(self, client, classifier):
        classifier.error = RuntimeError("boom")

        response = client.post("/api/moderate", json={"message": "Vi saknar dig."})

        assert response.status_code == 200
        assert response.json() == {"result": "UNSAFE"}

    def test_empty_rejected(self, client, classifier):
        response = client.post("/api/moderate", json={"message": "  "})

        assert response.status_code == 400
        assert classifier.calls == []

    def test_does_not_store(self, client, kv):
        client.post("/api/moderate", json={"message": "Vi saknar dig."})

        assert kv.lrange("candles:messages") is None


class TestHealthAndMetrics:

    def test_live(self, client):
        assert client.get("/health/live").json() == {"status": "ok", "reason": None}

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready_without_classifier(self, store):
        app = create_app(wall=CandleWall(store, ModerationGateway(None)))
        with TestClient(app) as test_client:
            response = test_client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["reason"] == "Moderation classifier not configured"

    def test_metrics_count_submissions(self, client, classifier):
        accepted = sample("candle_submissions_total", result="accepted")
        rejected = sample("candle_submissions_total", result="moderation_rejected")
        unsafe = sample("moderation_verdicts_total", verdict="UNSAFE", source="classifier")

        light(client, "Vi saknar dig.")
        classifier.reply = "UNSAFE"
        light(client, "köp nu")

        assert client.get("/metrics").status_code == 200
        assert sample("candle_submissions_total", result="accepted") == accepted + 1
        assert sample("candle_submissions_total", result="moderation_rejected") == rejected + 1
        assert sample("moderation_verdicts_total", verdict="UNSAFE", source="classifier") == unsafe + 1

    def test_metrics_separate_classifier_faults(self, client, classifier):
        content = sample("moderation_verdicts_total", verdict="UNSAFE", source="classifier")
        faults = sample("moderation_verdicts_total", verdict="UNSAFE", source="error")

        classifier.error = ConnectionError("network down")
        light(client, "Vi saknar dig.")

        assert sample("moderation_verdicts_total", verdict="UNSAFE", source="error") == faults + 1
        assert sample("moderation_verdicts_total", verdict="UNSAFE", source="classifier") == content

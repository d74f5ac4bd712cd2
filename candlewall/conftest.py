"""
Pytest configuration and shared fixtures.

Test env vars are set here before any app imports so settings are
reloaded with them. Every test gets its own in-memory database and a
deterministic classifier in place of the real one.
"""

import os

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Clear settings cache before any app imports to ensure test env vars are used
from candlewall.config import get_settings
get_settings.cache_clear()

from fastapi.testclient import TestClient

from candlewall.main import create_app
from candlewall.message_store import MessageStore
from candlewall.moderation import ModerationGateway
from candlewall.service import CandleWall
from candlewall.storage import SqlKeyValueStore, create_db_engine


class FakeClassifier:
    """Returns a canned reply (or raises) and records every call."""

    def __init__(self, reply="SAFE", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def complete(self, system, text, temperature):
        self.calls.append({"system": system, "text": text, "temperature": temperature})
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def make_classifier():
    return FakeClassifier


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def kv():
    """Key-value service over a fresh in-memory database."""
    store = SqlKeyValueStore(create_db_engine("sqlite://"))
    store.init_db()
    yield store
    store.engine.dispose()


@pytest.fixture
def store(kv):
    return MessageStore(kv)


@pytest.fixture
def wall(store, classifier):
    return CandleWall(store, ModerationGateway(classifier))


@pytest.fixture
def client(wall):
    """Test client serving the wall fixture."""
    app = create_app(wall=wall)
    with TestClient(app) as test_client:
        yield test_client

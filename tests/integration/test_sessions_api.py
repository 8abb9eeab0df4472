"""
Integration tests for the session administration API

The app comes from the application factory with a pre-connected store, so the
router, middleware and store are exercised together.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from sessionstore.core.config import Settings
from sessionstore.core.session_store import SessionStore
from sessionstore.db.session import create_session_factory
from sessionstore.main import create_app
from tests.utils.helpers import fetch_row


@pytest.fixture
def app_settings():
    return Settings(_env_file=None, secret_key="test-secret-key-for-testing-only")


@pytest.fixture
def live_store(session_factory):
    return SessionStore().connect(session_factory)


@pytest.fixture
def client(app_settings, live_store):
    app = create_app(app_settings, store=live_store, configure_logging=False)
    with TestClient(app) as test_client:
        yield test_client


def seed(store, **sessions):
    async def _seed():
        for sid, payload in sessions.items():
            await store.set(sid, payload)
    asyncio.run(_seed())


class TestListSessions:
    """GET /api/sessions"""

    def test_empty(self, client):
        response = client.get("/api/sessions")

        assert response.status_code == 200
        assert response.json() == {"count": 0, "sessions": []}

    def test_lists_active_sessions(self, client, live_store):
        seed(live_store, a={"user": 1}, b={"user": 2})
        asyncio.run(live_store.destroy("b"))

        response = client.get("/api/sessions")

        assert response.json() == {"count": 1, "sessions": [{"id": "a", "data": {"user": 1}}]}


class TestGetSession:
    """GET /api/sessions/{sid}"""

    def test_found(self, client, live_store):
        seed(live_store, a={"user": 1})

        response = client.get("/api/sessions/a")

        assert response.status_code == 200
        assert response.json() == {"id": "a", "data": {"user": 1}}

    def test_missing_is_404(self, client):
        assert client.get("/api/sessions/nope").status_code == 404


class TestDestroySessions:
    """DELETE /api/sessions/{sid} and POST /api/sessions/destroy"""

    def test_destroy_one(self, client, live_store, session_factory):
        seed(live_store, a={"user": 1})

        response = client.delete("/api/sessions/a")

        assert response.status_code == 204
        assert fetch_row(session_factory, "a").destroyed_at is not None

    def test_destroy_unknown_is_not_an_error(self, client):
        assert client.delete("/api/sessions/nope").status_code == 204

    def test_destroy_many(self, client, live_store):
        seed(live_store, a={}, b={}, c={})

        response = client.post("/api/sessions/destroy", json={"ids": ["a", "b", "missing"]})

        assert response.status_code == 204
        assert [s["id"] for s in client.get("/api/sessions").json()["sessions"]] == ["c"]

    def test_destroy_many_requires_ids(self, client):
        assert client.post("/api/sessions/destroy", json={"ids": []}).status_code == 422


class TestStorageUnavailable:
    """Storage failures map to 503"""

    def test_broken_database_returns_503(self, app_settings, empty_engine):
        store = SessionStore(on_error=lambda s, e: None)
        store.connect(create_session_factory(empty_engine))
        app = create_app(app_settings, store=store, configure_logging=False)

        with TestClient(app) as client:
            assert client.get("/api/sessions").status_code == 503
            assert client.get("/api/sessions/a").status_code == 503
            assert client.delete("/api/sessions/a").status_code == 503

    def test_missing_store_returns_503(self, app_settings, live_store):
        app = create_app(app_settings, store=live_store, configure_logging=False)
        app.state.session_store = None

        with TestClient(app) as client:
            assert client.get("/api/sessions").status_code == 503


class TestCreateApp:
    """Application factory building its own store"""

    def test_builds_store_from_settings(self, tmp_path):
        app_settings = Settings(
            _env_file=None,
            database_url=f"sqlite:///{tmp_path / 'sessions.db'}",
            cleanup_limit=3,
            ttl=60,
        )

        app = create_app(app_settings, configure_logging=False)

        store = app.state.session_store
        assert store.connected
        assert store.cleanup_limit == 3
        assert store.ttl == 60
        with TestClient(app) as client:
            assert client.get("/api/sessions").json()["count"] == 0

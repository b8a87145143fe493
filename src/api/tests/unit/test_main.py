"""Unit tests for the FastAPI application and its worker lifespan."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from main import build_app, create_app
from shared_kernel.outbox.value_objects import OutboxStats


def make_worker(running: bool = True) -> MagicMock:
    worker = MagicMock()
    worker.start = AsyncMock()
    worker.stop = AsyncMock()
    worker.is_running = running
    return worker


@pytest.fixture
def relay() -> MagicMock:
    return make_worker()


@pytest.fixture
def retention() -> MagicMock:
    return make_worker()


@pytest.fixture
def close_connections():
    with patch("main.close_database_connections", new_callable=AsyncMock) as mock:
        yield mock


class TestLifespan:
    """Tests for worker startup and shutdown."""

    def test_starts_and_stops_workers(self, relay, retention, close_connections):
        app = create_app(relay=relay, retention=retention)

        with TestClient(app):
            relay.start.assert_awaited_once()
            retention.start.assert_awaited_once()
            relay.stop.assert_not_called()

        relay.stop.assert_awaited_once()
        retention.stop.assert_awaited_once()
        close_connections.assert_awaited_once()

    def test_disabled_workers_are_not_started(
        self, relay, retention, close_connections
    ):
        app = create_app(
            relay=relay,
            retention=retention,
            relay_enabled=False,
            retention_enabled=False,
        )

        with TestClient(app):
            pass

        relay.start.assert_not_called()
        retention.start.assert_not_called()

    @pytest.mark.asyncio
    async def test_shutdown_continues_when_relay_stop_fails(
        self, relay, retention, close_connections
    ):
        relay.stop.side_effect = RuntimeError("drain failed")
        app = create_app(relay=relay, retention=retention)

        with pytest.raises(RuntimeError, match="drain failed"):
            async with app.router.lifespan_context(app):
                pass

        retention.stop.assert_awaited_once()
        close_connections.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connections_close_when_retention_stop_fails(
        self, relay, retention, close_connections
    ):
        retention.stop.side_effect = RuntimeError("purge stuck")
        app = create_app(relay=relay, retention=retention)

        with pytest.raises(RuntimeError, match="purge stuck"):
            async with app.router.lifespan_context(app):
                pass

        relay.stop.assert_awaited_once()
        close_connections.assert_awaited_once()


class TestHealthEndpoints:
    """Tests for /health and /health/outbox."""

    def test_health(self, relay, retention, close_connections):
        with TestClient(create_app(relay, retention)) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_outbox_health_without_stats(self, relay, retention, close_connections):
        retention.is_running = False

        with TestClient(create_app(relay, retention)) as client:
            body = client.get("/health/outbox").json()

        assert body == {"relay_running": True, "retention_running": False}

    def test_outbox_health_with_stats(self, relay, retention, close_connections):
        stats_provider = AsyncMock(
            return_value=OutboxStats(pending=3, processed=10, dead_lettered=1)
        )

        with TestClient(
            create_app(relay, retention, stats_provider=stats_provider)
        ) as client:
            body = client.get("/health/outbox").json()

        assert body["status"] == "ok"
        assert body["stats"] == {"pending": 3, "processed": 10, "dead_lettered": 1}

    def test_outbox_health_reports_stats_errors(
        self, relay, retention, close_connections
    ):
        stats_provider = AsyncMock(side_effect=RuntimeError("database down"))

        with TestClient(
            create_app(relay, retention, stats_provider=stats_provider)
        ) as client:
            response = client.get("/health/outbox")

        assert response.status_code == 200
        assert response.json()["status"] == "error"
        assert response.json()["error"] == "database down"


def route_paths(app) -> set[str]:
    return {route.path for route in app.routes}


class TestDeadLetterRoutesWiring:
    def test_routes_are_absent_without_session_factory(self, relay, retention):
        assert "/outbox/dead-letters" not in route_paths(create_app(relay, retention))

    def test_routes_are_served_with_session_factory(self, relay, retention):
        app = create_app(relay, retention, session_factory=MagicMock())

        assert {
            "/outbox/dead-letters",
            "/outbox/dead-letters/{record_id}/replay",
        } <= route_paths(app)


class TestBuildApp:
    """Tests for the production application factory."""

    def test_wires_workers_and_routes(self):
        with (
            patch("main.get_session_factory", return_value=MagicMock()),
            patch("main.configure_logging") as configure_logging,
        ):
            app = build_app(AsyncMock())

        configure_logging.assert_called_once()
        assert {
            "/health",
            "/health/outbox",
            "/outbox/dead-letters",
            "/outbox/dead-letters/{record_id}/replay",
        } <= route_paths(app)

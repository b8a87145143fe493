"""Main FastAPI application entry point.

The application hosts the outbox relay loop and retention sweep as
background tasks tied to its lifespan.

There is no module-level app: the message bus client is not part of this
service. The deployment constructs its EventPublisher and calls
build_app(publisher), for example from a factory passed to
`uvicorn --factory`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from infrastructure.database import close_database_connections, get_session_factory
from infrastructure.logging import configure_logging
from infrastructure.outbox.dependencies import OutboxWorkers, build_outbox_workers
from infrastructure.outbox.routes import build_dead_letter_router
from infrastructure.outbox.store import OutboxStore
from infrastructure.outbox.worker import PeriodicWorker
from infrastructure.settings import (
    get_outbox_settings,
    get_publisher_settings,
    get_settings,
)
from iam.infrastructure.outbox import IAMEventCodec
from shared_kernel.outbox.ports import EventPublisher
from shared_kernel.outbox.value_objects import OutboxStats

StatsProvider = Callable[[], Awaitable[OutboxStats]]


def create_app(
    relay: PeriodicWorker,
    retention: PeriodicWorker,
    stats_provider: StatsProvider | None = None,
    relay_enabled: bool = True,
    retention_enabled: bool = True,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """Create the application around already-built outbox workers.

    Args:
        relay: The relay loop
        retention: The retention sweep
        stats_provider: Optional coroutine returning outbox counts
        relay_enabled: Start the relay loop with the application
        retention_enabled: Start the retention sweep with the application
        session_factory: Serves the dead-letter routes when given

    Returns:
        The configured FastAPI application
    """

    @asynccontextmanager
    async def user_service_lifespan(app: FastAPI):
        """Application lifespan context.

        Manages:
        - Outbox worker startup
        - Draining the workers, then closing database connections on shutdown
        """
        if relay_enabled:
            await relay.start()
        if retention_enabled:
            await retention.start()

        yield

        try:
            await relay.stop()
        finally:
            try:
                await retention.stop()
            finally:
                await close_database_connections()

    app = FastAPI(
        title="User Service",
        description="Identity and user management service",
        lifespan=user_service_lifespan,
    )

    @app.get("/health")
    def health() -> dict:
        """Basic health check endpoint."""
        return {"status": "ok"}

    @app.get("/health/outbox")
    async def health_outbox() -> dict:
        """Report outbox worker state and record counts."""
        body: dict = {
            "relay_running": relay.is_running,
            "retention_running": retention.is_running,
        }
        if stats_provider is not None:
            try:
                body["stats"] = asdict(await stats_provider())
                body["status"] = "ok"
            except Exception as e:
                body["status"] = "error"
                body["error"] = str(e)
        return body

    if session_factory is not None:
        app.include_router(build_dead_letter_router(session_factory))

    return app


async def outbox_stats() -> OutboxStats:
    """Read outbox counts in a short-lived session."""
    async with get_session_factory()() as session:
        return await OutboxStore(session).get_stats()


def build_app(publisher: EventPublisher) -> FastAPI:
    """Build the production application from environment settings.

    Args:
        publisher: The message bus publisher the relay delivers to
    """
    settings = get_settings()
    outbox_settings = get_outbox_settings()
    configure_logging(debug=settings.debug)

    workers: OutboxWorkers = build_outbox_workers(
        session_factory=get_session_factory(),
        publisher=publisher,
        codecs=[IAMEventCodec()],
        outbox_settings=outbox_settings,
        publisher_settings=get_publisher_settings(),
    )

    return create_app(
        relay=workers.relay,
        retention=workers.retention,
        stats_provider=outbox_stats,
        relay_enabled=outbox_settings.relay_enabled,
        retention_enabled=outbox_settings.retention_enabled,
        session_factory=get_session_factory(),
    )

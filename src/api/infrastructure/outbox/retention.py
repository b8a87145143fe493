"""Retention sweep for terminal outbox records."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from infrastructure.outbox.relay import StoreFactory, describe_error
from infrastructure.outbox.store import OutboxStore
from infrastructure.outbox.worker import PeriodicWorker
from shared_kernel.outbox.observability import DefaultRetentionProbe, RetentionProbe


class RetentionSweep(PeriodicWorker):
    """Deletes processed and dead-lettered records past the retention window.

    Each sweep runs in its own transaction. Pending records are never
    purged, and dead letters remain in their archive table.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        probe: RetentionProbe | None = None,
        store_factory: StoreFactory = OutboxStore,
        retention_days: int = 7,
        cleanup_pause_seconds: float = 3600.0,
        shutdown_timeout_seconds: float = 30.0,
    ) -> None:
        super().__init__(
            interval_seconds=cleanup_pause_seconds,
            shutdown_timeout_seconds=shutdown_timeout_seconds,
            name="outbox-retention",
        )
        if retention_days < 1:
            raise ValueError(f"retention_days must be >= 1, got {retention_days}")

        self._session_factory = session_factory
        self._probe = probe or DefaultRetentionProbe()
        self._store_factory = store_factory
        self._retention_days = retention_days

    async def purge_once(self) -> int:
        """Run one purge and return the number of deleted records."""
        async with self._session_factory() as session:
            async with session.begin():
                store = self._store_factory(session)
                count = await store.purge_older_than(self._retention_days)

        self._probe.records_purged(count, self._retention_days)
        return count

    async def _iteration(self) -> None:
        try:
            await self.purge_once()
        except Exception as e:
            self._probe.sweep_failed(describe_error(e))

    def _on_started(self) -> None:
        self._probe.sweep_started(self._retention_days)

    def _on_stopped(self) -> None:
        self._probe.sweep_stopped()

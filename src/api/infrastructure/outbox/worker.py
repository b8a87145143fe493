"""Background workers for the outbox.

Workers are plain asyncio tasks governed by an explicit stop signal and an
explicit pause between iterations. Stopping drains the iteration in
flight instead of interrupting it halfway through a write.
"""

from __future__ import annotations

import asyncio
import contextlib

from infrastructure.outbox.relay import RelayCycle, describe_error
from shared_kernel.outbox.observability import DefaultRelayProbe, RelayProbe
from shared_kernel.outbox.value_objects import CycleResult


class PeriodicWorker:
    """Runs ``_iteration()`` repeatedly with a pause in between.

    Subclasses implement ``_iteration`` (which must not raise ``Exception``)
    and may override the ``_on_started``/``_on_stopped`` hooks.
    """

    def __init__(
        self,
        interval_seconds: float,
        shutdown_timeout_seconds: float = 30.0,
        name: str = "outbox-worker",
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")

        self._interval = interval_seconds
        self._shutdown_timeout = shutdown_timeout_seconds
        self._name = name
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the worker task. Calling start on a running worker is a no-op."""
        if self.is_running:
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=self._name)
        self._on_started()

    async def stop(self) -> None:
        """Signal the worker to stop and wait for the current iteration.

        If the iteration does not finish within the shutdown timeout the
        task is cancelled; open transactions are then rolled back.
        """
        if self._task is None or self._stop_event is None:
            return

        self._stop_event.set()
        try:
            await asyncio.wait_for(asyncio.shield(self._task), self._shutdown_timeout)
        except TimeoutError:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

        self._task = None
        self._on_stopped()

    async def _run(self) -> None:
        assert self._stop_event is not None

        while not self._stop_event.is_set():
            await self._iteration()
            await self._pause()

    async def _pause(self) -> None:
        """Sleep for the interval, waking early when stop() is called."""
        assert self._stop_event is not None
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), self._interval)

    async def _iteration(self) -> None:
        raise NotImplementedError

    def _on_started(self) -> None:
        pass

    def _on_stopped(self) -> None:
        pass


class RelayLoop(PeriodicWorker):
    """Runs a relay cycle every polling interval until stopped.

    A failing cycle is logged and the loop keeps going; the pause after a
    failure prevents a hot error loop. Cycles never overlap within one
    loop because each one is awaited before the next pause.
    """

    def __init__(
        self,
        cycle: RelayCycle,
        probe: RelayProbe | None = None,
        batch_size: int = 100,
        polling_interval_seconds: float = 5.0,
        shutdown_timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize the loop.

        Args:
            cycle: The relay cycle to run
            probe: Observability probe for logging/metrics
            batch_size: Maximum records per cycle
            polling_interval_seconds: Pause between cycles
            shutdown_timeout_seconds: How long stop() waits for a cycle
        """
        super().__init__(
            interval_seconds=polling_interval_seconds,
            shutdown_timeout_seconds=shutdown_timeout_seconds,
            name="outbox-relay",
        )
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        self._cycle = cycle
        self._probe = probe or DefaultRelayProbe()
        self._batch_size = batch_size

    async def run_once(self) -> CycleResult | None:
        """Run a single cycle with the loop's error handling.

        Returns:
            The cycle result, or None if the cycle failed and was rolled back
        """
        try:
            return await self._cycle.run(self._batch_size)
        except Exception as e:
            self._probe.cycle_failed(describe_error(e))
            return None

    async def _iteration(self) -> None:
        await self.run_once()

    def _on_started(self) -> None:
        self._probe.worker_started()

    def _on_stopped(self) -> None:
        self._probe.worker_stopped()

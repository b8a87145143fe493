"""Observability probes for the outbox relay.

Following Domain Oriented Observability, probes capture domain-significant
events and metrics without cluttering relay logic with logging concerns.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

import structlog

if TYPE_CHECKING:
    from shared_kernel.outbox.value_objects import CycleResult


logger = structlog.get_logger()


class RelayProbe(Protocol):
    """Protocol for relay cycle and relay loop observability.

    Implementations can log, emit metrics, or send traces.
    """

    def worker_started(self) -> None:
        """Called when the relay loop starts."""
        ...

    def worker_stopped(self) -> None:
        """Called when the relay loop stops."""
        ...

    def batch_fetched(self, count: int) -> None:
        """Called when a cycle claimed a non-empty batch."""
        ...

    def record_processed(self, record_id: UUID, event_tag: str, topic: str) -> None:
        """Called when a record was published and marked processed."""
        ...

    def record_already_processed(self, record_id: UUID) -> None:
        """Called when a record turned terminal before this relay marked it."""
        ...

    def publish_retry_scheduled(
        self, record_id: UUID, attempt: int, delay_seconds: float, error: str
    ) -> None:
        """Called when an in-cycle publish attempt failed and will be retried."""
        ...

    def record_failed(self, record_id: UUID, attempt_count: int, error: str) -> None:
        """Called when delivery failed and the record stays pending."""
        ...

    def record_dead_lettered(
        self, record_id: UUID, event_tag: str, reason: str, error: str
    ) -> None:
        """Called when a record was moved to the dead letter archive."""
        ...

    def cycle_completed(self, result: "CycleResult") -> None:
        """Called when a cycle committed its batch."""
        ...

    def cycle_failed(self, error: str) -> None:
        """Called when a cycle rolled back because of an infrastructure failure."""
        ...


class DefaultRelayProbe:
    """Default implementation using structlog.

    Logs all relay events with appropriate log levels.
    """

    def __init__(self) -> None:
        """Initialize the probe with a logger."""
        self._log = logger.bind(component="outbox_relay")

    def worker_started(self) -> None:
        """Log relay loop start."""
        self._log.info("outbox_relay_started")

    def worker_stopped(self) -> None:
        """Log relay loop stop."""
        self._log.info("outbox_relay_stopped")

    def batch_fetched(self, count: int) -> None:
        """Log batch size."""
        self._log.info("outbox_batch_fetched", count=count)

    def record_processed(self, record_id: UUID, event_tag: str, topic: str) -> None:
        """Log successful delivery."""
        self._log.debug(
            "outbox_record_processed",
            record_id=str(record_id),
            event_tag=event_tag,
            topic=topic,
        )

    def record_already_processed(self, record_id: UUID) -> None:
        """Log a record finished by another relay instance."""
        self._log.warning(
            "outbox_record_already_processed",
            record_id=str(record_id),
        )

    def publish_retry_scheduled(
        self, record_id: UUID, attempt: int, delay_seconds: float, error: str
    ) -> None:
        """Log in-cycle publish retry."""
        self._log.warning(
            "outbox_publish_retry_scheduled",
            record_id=str(record_id),
            attempt=attempt,
            delay_seconds=delay_seconds,
            error=error,
        )

    def record_failed(self, record_id: UUID, attempt_count: int, error: str) -> None:
        """Log failed delivery that will be retried next cycle."""
        self._log.warning(
            "outbox_record_failed",
            record_id=str(record_id),
            attempt_count=attempt_count,
            error=error,
        )

    def record_dead_lettered(
        self, record_id: UUID, event_tag: str, reason: str, error: str
    ) -> None:
        """Log record moved to the dead letter archive."""
        self._log.error(
            "outbox_record_dead_lettered",
            record_id=str(record_id),
            event_tag=event_tag,
            reason=reason,
            error=error,
        )

    def cycle_completed(self, result: "CycleResult") -> None:
        """Log cycle outcome counters."""
        if result.is_empty:
            self._log.debug("outbox_cycle_idle")
            return
        self._log.info(
            "outbox_cycle_completed",
            fetched=result.fetched,
            processed=result.processed,
            retried=result.retried,
            dead_lettered=result.dead_lettered,
            already_processed=result.already_processed,
        )

    def cycle_failed(self, error: str) -> None:
        """Log batch rollback."""
        self._log.error("outbox_cycle_failed", error=error)


class RetentionProbe(Protocol):
    """Protocol for retention sweep observability."""

    def sweep_started(self, retention_days: int) -> None:
        """Called when the sweep loop starts."""
        ...

    def sweep_stopped(self) -> None:
        """Called when the sweep loop stops."""
        ...

    def records_purged(self, count: int, retention_days: int) -> None:
        """Called after each purge with the number of deleted records."""
        ...

    def sweep_failed(self, error: str) -> None:
        """Called when a purge failed; the loop keeps running."""
        ...


class DefaultRetentionProbe:
    """Default implementation using structlog."""

    def __init__(self) -> None:
        """Initialize the probe with a logger."""
        self._log = logger.bind(component="outbox_retention")

    def sweep_started(self, retention_days: int) -> None:
        """Log sweep loop start."""
        self._log.info("outbox_retention_started", retention_days=retention_days)

    def sweep_stopped(self) -> None:
        """Log sweep loop stop."""
        self._log.info("outbox_retention_stopped")

    def records_purged(self, count: int, retention_days: int) -> None:
        """Log purge outcome."""
        self._log.info(
            "outbox_records_purged",
            count=count,
            retention_days=retention_days,
        )

    def sweep_failed(self, error: str) -> None:
        """Log purge failure."""
        self._log.error("outbox_retention_failed", error=error)


class OutboxStoreProbe(Protocol):
    """Protocol for outbox store observability."""

    def record_appended(self, record_id: UUID, event_tag: str, topic: str) -> None:
        """Called when a record joins the caller's transaction."""
        ...

    def dead_letter_replayed(self, original_id: UUID, new_id: UUID) -> None:
        """Called when an operator re-queued a dead letter."""
        ...


class DefaultOutboxStoreProbe:
    """Default implementation using structlog."""

    def __init__(self) -> None:
        """Initialize the probe with a logger."""
        self._log = logger.bind(component="outbox_store")

    def record_appended(self, record_id: UUID, event_tag: str, topic: str) -> None:
        """Log record append."""
        self._log.debug(
            "outbox_record_appended",
            record_id=str(record_id),
            event_tag=event_tag,
            topic=topic,
        )

    def dead_letter_replayed(self, original_id: UUID, new_id: UUID) -> None:
        """Log dead letter replay."""
        self._log.info(
            "outbox_dead_letter_replayed",
            original_id=str(original_id),
            new_id=str(new_id),
        )


class DecoderRegistryProbe(Protocol):
    """Protocol for decoder registry observability."""

    def decoder_registered(self, event_tag: str) -> None:
        """Called when a decoder is registered for an event tag."""
        ...


class DefaultDecoderRegistryProbe:
    """Default implementation using structlog."""

    def __init__(self) -> None:
        """Initialize the probe with a logger."""
        self._log = logger.bind(component="outbox_registry")

    def decoder_registered(self, event_tag: str) -> None:
        """Log decoder registration."""
        self._log.info("outbox_decoder_registered", event_tag=event_tag)

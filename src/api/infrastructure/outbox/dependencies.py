"""Wiring for the outbox workers.

Builds the decoder registry from the bounded-context codecs and assembles
the relay loop and retention sweep from settings.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from infrastructure.outbox.publishers import PrefixedTopicPublisher
from infrastructure.outbox.relay import RelayCycle
from infrastructure.outbox.retention import RetentionSweep
from infrastructure.outbox.worker import RelayLoop
from infrastructure.settings import OutboxSettings, PublisherSettings
from shared_kernel.outbox.observability import (
    DefaultDecoderRegistryProbe,
    DefaultRelayProbe,
    DefaultRetentionProbe,
    RelayProbe,
    RetentionProbe,
)
from shared_kernel.outbox.ports import EventCodec, EventPublisher
from shared_kernel.outbox.registry import EventDecoderRegistry


@dataclass(frozen=True)
class OutboxWorkers:
    """The two background workers of the outbox."""

    relay: RelayLoop
    retention: RetentionSweep


def build_decoder_registry(codecs: Iterable[EventCodec]) -> EventDecoderRegistry:
    """Register every codec's decoders into a fresh registry."""
    registry = EventDecoderRegistry(probe=DefaultDecoderRegistryProbe())
    for codec in codecs:
        registry.register_codec(codec)
    return registry


def build_outbox_workers(
    session_factory: async_sessionmaker[AsyncSession],
    publisher: EventPublisher,
    codecs: Iterable[EventCodec],
    outbox_settings: OutboxSettings,
    publisher_settings: PublisherSettings | None = None,
    relay_probe: RelayProbe | None = None,
    retention_probe: RetentionProbe | None = None,
) -> OutboxWorkers:
    """Assemble the relay loop and retention sweep.

    Args:
        session_factory: Factory for creating database sessions
        publisher: Message bus publisher
        codecs: Codecs of every bounded context that appends to the outbox
        outbox_settings: Relay and retention configuration
        publisher_settings: Optional topic prefix configuration
        relay_probe: Optional probe for the relay
        retention_probe: Optional probe for the retention sweep

    Returns:
        The unstarted workers
    """
    if publisher_settings is not None and publisher_settings.topic_prefix:
        publisher = PrefixedTopicPublisher(publisher, publisher_settings.topic_prefix)

    relay_probe = relay_probe or DefaultRelayProbe()

    cycle = RelayCycle(
        session_factory=session_factory,
        registry=build_decoder_registry(codecs),
        publisher=publisher,
        probe=relay_probe,
        max_attempts=outbox_settings.max_attempts,
        in_cycle_attempts=outbox_settings.publish_attempts_per_cycle,
        retry_interval_seconds=outbox_settings.retry_interval_seconds,
    )
    relay = RelayLoop(
        cycle=cycle,
        probe=relay_probe,
        batch_size=outbox_settings.batch_size,
        polling_interval_seconds=outbox_settings.polling_interval_seconds,
        shutdown_timeout_seconds=outbox_settings.shutdown_timeout_seconds,
    )
    retention = RetentionSweep(
        session_factory=session_factory,
        probe=retention_probe or DefaultRetentionProbe(),
        retention_days=outbox_settings.retention_days,
        cleanup_pause_seconds=outbox_settings.cleanup_pause_seconds,
        shutdown_timeout_seconds=outbox_settings.shutdown_timeout_seconds,
    )

    return OutboxWorkers(relay=relay, retention=retention)

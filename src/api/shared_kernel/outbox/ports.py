"""Protocols (ports) for the outbox pattern.

These protocols define the seams of the relay: where records are stored,
how payloads are decoded and where events are published. Bounded contexts
plug their own decoders in without the shared kernel knowing their events.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import UUID

if TYPE_CHECKING:
    from shared_kernel.outbox.value_objects import (
        DeadLetterRecord,
        OutboxRecord,
        OutboxStats,
    )


# A decode function turns a stored payload back into an event object.
EventDecoder = Callable[[str], Any]


@runtime_checkable
class IOutboxStore(Protocol):
    """Persistence operations over outbox records.

    An implementation is bound to one database session. Appends join the
    caller's transaction and are committed or rolled back with the
    caller's domain changes. The store never commits on its own.
    """

    async def append(self, record: "OutboxRecord") -> None:
        """Insert a pending record as part of the current transaction."""
        ...

    async def fetch_pending_batch(self, limit: int) -> list["OutboxRecord"]:
        """Claim up to ``limit`` pending records, oldest first.

        Claimed rows are locked for the rest of the transaction; rows
        locked by another relay are skipped.
        """
        ...

    async def mark_processed(self, record_id: UUID) -> bool:
        """Mark a record as delivered.

        Returns:
            False when the record was already terminal (no-op)
        """
        ...

    async def record_failed_attempt(self, record_id: UUID, error: str) -> int:
        """Increment the attempt counter and store the error.

        Returns:
            The attempt count after the increment
        """
        ...

    async def get_attempt_count(self, record_id: UUID) -> int:
        """Return the number of failed attempts for a record."""
        ...

    async def move_to_dead_letter(self, record_id: UUID, error: str) -> None:
        """Make a record terminal with a dead-letter marker and archive it."""
        ...

    async def purge_older_than(self, retention_days: int) -> int:
        """Delete terminal records older than the retention window.

        Returns:
            Number of deleted records
        """
        ...

    async def get(self, record_id: UUID) -> "OutboxRecord | None":
        """Return a single record, or None if it does not exist."""
        ...

    async def get_stats(self) -> "OutboxStats":
        """Return record counts per lifecycle state."""
        ...

    async def list_dead_letters(self, limit: int = 100) -> list["DeadLetterRecord"]:
        """Return archived dead letters, newest first."""
        ...

    async def replay_dead_letter(self, record_id: UUID) -> "OutboxRecord":
        """Re-queue an archived dead letter as a new pending record."""
        ...


@runtime_checkable
class EventPublisher(Protocol):
    """Publishes integration events to the external message bus.

    Delivery is at-least-once: the relay may publish the same event more
    than once and consumers must tolerate duplicates. Implementations
    signal failure by raising.
    """

    async def publish(self, topic: str, event: Any) -> None:
        """Publish a decoded event to a topic.

        Args:
            topic: Destination channel name
            event: The decoded integration event

        Raises:
            Exception: Any failure; the relay treats it as transient
        """
        ...


@runtime_checkable
class EventCodec(Protocol):
    """Encodes and decodes one bounded context's integration events.

    Each context owns the stable tags of its events and registers its
    decode functions with the relay's registry at startup.
    """

    def supported_event_tags(self) -> frozenset[str]:
        """Return the event tags this codec handles."""
        ...

    def encode(self, event: Any) -> tuple[str, str]:
        """Convert an event to its (event_tag, payload) pair.

        Raises:
            ValueError: If the event type is not supported
        """
        ...

    def decode(self, event_tag: str, payload: str) -> Any:
        """Reconstruct an event from its tag and payload.

        Raises:
            ValueError: If the tag is unknown or the payload is invalid
        """
        ...

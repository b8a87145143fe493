"""Value objects for the outbox pattern.

Value objects are immutable descriptors that provide type safety and
domain semantics for outbox records.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID, uuid4


class OutboxStatus(StrEnum):
    """Lifecycle state of an outbox record.

    PENDING is the only non-terminal state. PROCESSED and DEAD_LETTERED
    are absorbing.
    """

    PENDING = "pending"
    PROCESSED = "processed"
    DEAD_LETTERED = "dead_lettered"


@dataclass(frozen=True)
class OutboxRecord:
    """Represents a single integration event waiting to be relayed.

    This is an immutable snapshot of a row in the outbox table. It carries
    everything the relay needs to decode the payload and publish it to the
    message bus.

    Attributes:
        id: Unique identifier, assigned at creation
        event_tag: Stable name of the event schema (e.g., "iam.user_registered.v1")
        topic: Destination channel on the message bus
        payload: Serialized event body (JSON text)
        occurred_at: When the event was recorded (UTC), the batch ordering key
        processed_at: When the record became terminal (None while pending)
        attempt_count: Number of failed delivery attempts
        last_error: The most recent delivery failure (if any)
        dead_lettered_at: When the record was dead-lettered (None otherwise)
    """

    id: UUID
    event_tag: str
    topic: str
    payload: str
    occurred_at: datetime
    processed_at: datetime | None = None
    attempt_count: int = 0
    last_error: str | None = None
    dead_lettered_at: datetime | None = None

    @classmethod
    def create(
        cls,
        event_tag: str,
        topic: str,
        payload: str,
        occurred_at: datetime | None = None,
    ) -> OutboxRecord:
        """Create a new pending record with a fresh identifier.

        Args:
            event_tag: Stable name of the event schema
            topic: Destination channel
            payload: Serialized event body
            occurred_at: Optional creation time (defaults to now, UTC)

        Returns:
            A pending OutboxRecord

        Raises:
            ValueError: If event_tag or topic is empty
        """
        if not event_tag:
            raise ValueError("event_tag must not be empty")
        if not topic:
            raise ValueError("topic must not be empty")

        return cls(
            id=uuid4(),
            event_tag=event_tag,
            topic=topic,
            payload=payload,
            occurred_at=occurred_at or datetime.now(UTC),
        )

    @property
    def status(self) -> OutboxStatus:
        """Derive the lifecycle state from the terminal timestamps."""
        if self.processed_at is None:
            return OutboxStatus.PENDING
        if self.dead_lettered_at is not None:
            return OutboxStatus.DEAD_LETTERED
        return OutboxStatus.PROCESSED

    @property
    def is_pending(self) -> bool:
        """Check if this record is still eligible for delivery."""
        return self.processed_at is None

    @property
    def is_terminal(self) -> bool:
        """Check if this record was delivered or dead-lettered."""
        return self.processed_at is not None

    @property
    def is_dead_lettered(self) -> bool:
        """Check if this record was moved to the dead letter archive."""
        return self.dead_lettered_at is not None


@dataclass(frozen=True)
class DeadLetterRecord:
    """Archived copy of a record that could not be delivered.

    Dead letters outlive the retention sweep so operators can inspect
    and replay them.

    Attributes:
        id: Identifier of the original outbox record
        event_tag: Stable name of the event schema
        topic: Destination channel
        payload: Serialized event body
        last_error: The failure that caused the dead-lettering
        attempt_count: Failed attempts at the time of archiving
        occurred_at: When the original event was recorded
        archived_at: When the record was dead-lettered
        replayed_at: When an operator re-queued it (None if never)
    """

    id: UUID
    event_tag: str
    topic: str
    payload: str
    last_error: str | None
    attempt_count: int
    occurred_at: datetime
    archived_at: datetime
    replayed_at: datetime | None = None

    @property
    def is_replayed(self) -> bool:
        """Check if this dead letter was already re-queued."""
        return self.replayed_at is not None


@dataclass(frozen=True)
class OutboxStats:
    """Counts of outbox records per lifecycle state."""

    pending: int = 0
    processed: int = 0
    dead_lettered: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.processed + self.dead_lettered


@dataclass(frozen=True)
class CycleResult:
    """Outcome counters for one relay cycle."""

    fetched: int = 0
    processed: int = 0
    retried: int = 0
    dead_lettered: int = 0
    already_processed: int = 0

    @property
    def is_empty(self) -> bool:
        return self.fetched == 0

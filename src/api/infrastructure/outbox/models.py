"""SQLAlchemy ORM models for the outbox pattern.

This module provides the database models for the outbox table and the
dead letter archive used by the transactional outbox relay.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base
from shared_kernel.outbox.value_objects import DeadLetterRecord, OutboxRecord


class OutboxModel(Base):
    """ORM model for the outbox table.

    Stores integration events appended by business transactions until the
    relay publishes them to the message bus.

    The table uses partial indexes for efficient polling:
    - idx_outbox_messages_pending: For claiming pending records in order
    - idx_outbox_messages_terminal: For the retention sweep
    - idx_outbox_messages_dead_lettered: For monitoring dead letters
    """

    __tablename__ = "outbox_messages"
    __table_args__ = (
        Index(
            "idx_outbox_messages_pending",
            "occurred_at",
            postgresql_where=text("processed_at IS NULL"),
        ),
        Index(
            "idx_outbox_messages_terminal",
            "processed_at",
            postgresql_where=text("processed_at IS NOT NULL"),
        ),
        Index(
            "idx_outbox_messages_dead_lettered",
            "dead_lettered_at",
            postgresql_where=text("dead_lettered_at IS NOT NULL"),
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    event_tag: Mapped[str] = mapped_column(String(255), nullable=False)
    topic: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    attempt_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    dead_lettered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @classmethod
    def from_value_object(cls, record: OutboxRecord) -> OutboxModel:
        """Build a row from an OutboxRecord value object."""
        return cls(
            id=record.id,
            event_tag=record.event_tag,
            topic=record.topic,
            payload=record.payload,
            occurred_at=record.occurred_at,
            processed_at=record.processed_at,
            attempt_count=record.attempt_count,
            last_error=record.last_error,
            dead_lettered_at=record.dead_lettered_at,
        )

    def to_value_object(self) -> OutboxRecord:
        """Convert this ORM model to an OutboxRecord value object.

        Returns:
            An immutable OutboxRecord with all fields copied from this model.
        """
        return OutboxRecord(
            id=self.id,
            event_tag=self.event_tag,
            topic=self.topic,
            payload=self.payload,
            occurred_at=self.occurred_at,
            processed_at=self.processed_at,
            attempt_count=self.attempt_count or 0,
            last_error=self.last_error,
            dead_lettered_at=self.dead_lettered_at,
        )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<OutboxModel("
            f"id={self.id}, "
            f"event_tag={self.event_tag}, "
            f"topic={self.topic}, "
            f"processed_at={self.processed_at}, "
            f"attempt_count={self.attempt_count}"
            f")>"
        )


class DeadLetterModel(Base):
    """ORM model for the dead letter archive.

    A copy of every dead-lettered outbox row. The retention sweep only
    deletes from the outbox table, so archived rows stay available for
    inspection and replay.
    """

    __tablename__ = "dead_letter_messages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    event_tag: Mapped[str] = mapped_column(String(255), nullable=False)
    topic: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    archived_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    replayed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def to_value_object(self) -> DeadLetterRecord:
        """Convert this ORM model to a DeadLetterRecord value object."""
        return DeadLetterRecord(
            id=self.id,
            event_tag=self.event_tag,
            topic=self.topic,
            payload=self.payload,
            last_error=self.last_error,
            attempt_count=self.attempt_count,
            occurred_at=self.occurred_at,
            archived_at=self.archived_at,
            replayed_at=self.replayed_at,
        )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<DeadLetterModel("
            f"id={self.id}, "
            f"event_tag={self.event_tag}, "
            f"archived_at={self.archived_at}, "
            f"replayed_at={self.replayed_at}"
            f")>"
        )

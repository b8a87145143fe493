"""Exceptions for the outbox relay.

Two families matter to the relay: record-level failures (the payload
cannot be decoded, the publish call failed) are handled per record, while
store failures abort the whole batch.
"""

from __future__ import annotations

from uuid import UUID


class OutboxError(Exception):
    """Base exception for outbox operations."""

    pass


class StoreError(OutboxError):
    """Raised when the outbox store cannot complete an operation."""

    pass


class RecordNotFoundError(StoreError):
    """Raised when a record id does not exist in the store."""

    def __init__(self, record_id: UUID):
        super().__init__(f"Outbox record not found: {record_id}")
        self.record_id = record_id


class DeadLetterAlreadyReplayedError(StoreError):
    """Raised when a dead letter that was already re-queued is replayed again."""

    def __init__(self, record_id: UUID):
        super().__init__(f"Dead letter {record_id} was already replayed")
        self.record_id = record_id


class MalformedPayloadError(OutboxError):
    """Raised when a payload cannot be decoded under its event tag.

    Retrying can never fix this, so the relay dead-letters immediately.
    """

    def __init__(self, event_tag: str, message: str):
        super().__init__(f"Cannot decode payload for '{event_tag}': {message}")
        self.event_tag = event_tag


class UnknownEventTagError(MalformedPayloadError):
    """Raised when no decoder is registered for an event tag."""

    def __init__(self, event_tag: str, registered: list[str]):
        super().__init__(
            event_tag,
            f"no decoder registered. Registered tags: {registered}",
        )


class PublishError(OutboxError):
    """Raised by publishers when the message bus rejects a message.

    Message bus clients may raise it directly. PrefixedTopicPublisher wraps
    any other failure of the publisher it decorates in a PublishError.
    """

    def __init__(self, topic: str, message: str):
        super().__init__(f"Publish to '{topic}' failed: {message}")
        self.topic = topic

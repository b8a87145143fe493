"""Transactional outbox for integration events.

Business transactions append integration events to the outbox in the same
database transaction as their state change. A background relay delivers
them to the message bus at least once.
"""

from shared_kernel.outbox.exceptions import (
    DeadLetterAlreadyReplayedError,
    MalformedPayloadError,
    OutboxError,
    PublishError,
    RecordNotFoundError,
    StoreError,
    UnknownEventTagError,
)
from shared_kernel.outbox.ports import EventCodec, EventPublisher, IOutboxStore
from shared_kernel.outbox.registry import EventDecoderRegistry
from shared_kernel.outbox.value_objects import (
    CycleResult,
    DeadLetterRecord,
    OutboxRecord,
    OutboxStats,
    OutboxStatus,
)

__all__ = [
    "CycleResult",
    "DeadLetterAlreadyReplayedError",
    "DeadLetterRecord",
    "EventCodec",
    "EventDecoderRegistry",
    "EventPublisher",
    "IOutboxStore",
    "MalformedPayloadError",
    "OutboxError",
    "OutboxRecord",
    "OutboxStats",
    "OutboxStatus",
    "PublishError",
    "RecordNotFoundError",
    "StoreError",
    "UnknownEventTagError",
]

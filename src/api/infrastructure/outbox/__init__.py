"""Infrastructure layer for the outbox pattern.

Contains SQLAlchemy models, the store implementation, the relay cycle and
the background workers for outbox persistence and delivery.
"""

from infrastructure.outbox.models import DeadLetterModel, OutboxModel
from infrastructure.outbox.relay import RelayCycle
from infrastructure.outbox.retention import RetentionSweep
from infrastructure.outbox.store import OutboxStore
from infrastructure.outbox.worker import RelayLoop

__all__ = [
    "DeadLetterModel",
    "OutboxModel",
    "OutboxStore",
    "RelayCycle",
    "RelayLoop",
    "RetentionSweep",
]

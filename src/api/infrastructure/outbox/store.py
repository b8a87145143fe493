"""SQLAlchemy implementation of the outbox store.

The store shares the database session of its caller. Business handlers use
it to append records inside their own transaction; the relay and the
retention sweep use it inside the transaction they open per cycle. The
store itself never commits or rolls back.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import Select, case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.outbox.models import DeadLetterModel, OutboxModel
from shared_kernel.outbox.exceptions import (
    DeadLetterAlreadyReplayedError,
    RecordNotFoundError,
    StoreError,
)
from shared_kernel.outbox.observability import (
    DefaultOutboxStoreProbe,
    OutboxStoreProbe,
)
from shared_kernel.outbox.value_objects import (
    DeadLetterRecord,
    OutboxRecord,
    OutboxStats,
)


def _pending_batch_query(limit: int) -> Select[tuple[OutboxModel]]:
    """Claim the oldest pending rows, skipping rows locked by another relay."""
    return (
        select(OutboxModel)
        .where(OutboxModel.processed_at.is_(None))
        .order_by(OutboxModel.occurred_at, OutboxModel.id)
        .limit(limit)
        .with_for_update(skip_locked=True)
        .execution_options(populate_existing=True)
    )


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy failures into StoreError."""
    try:
        yield
    except SQLAlchemyError as e:
        raise StoreError(f"Outbox store operation '{operation}' failed: {e}") from e


class OutboxStore:
    """PostgreSQL implementation of the outbox store.

    Pending rows are claimed with FOR UPDATE SKIP LOCKED, so several relay
    instances can poll the same table without delivering a record twice
    concurrently.

    Every state-changing statement is guarded by ``processed_at IS NULL``:
    once a record is terminal no field changes again.
    """

    def __init__(
        self,
        session: AsyncSession,
        probe: OutboxStoreProbe | None = None,
    ) -> None:
        """Initialize the store with a session.

        Args:
            session: The SQLAlchemy async session (shared with the caller)
            probe: Optional observability probe
        """
        self._session = session
        self._probe = probe or DefaultOutboxStoreProbe()

    async def append(self, record: OutboxRecord) -> None:
        """Append a record within the caller's transaction.

        The row is only added to the session. It becomes durable when the
        caller commits and disappears if the caller rolls back.

        Args:
            record: A pending record, usually from OutboxRecord.create()

        Raises:
            ValueError: If the record is already terminal
        """
        if not record.is_pending:
            raise ValueError(f"Cannot append terminal outbox record {record.id}")

        self._session.add(OutboxModel.from_value_object(record))
        self._probe.record_appended(record.id, record.event_tag, record.topic)

    async def fetch_pending_batch(self, limit: int) -> list[OutboxRecord]:
        """Claim pending records ordered by occurrence time.

        Args:
            limit: Maximum number of records to claim

        Returns:
            Up to ``limit`` pending records, oldest first
        """
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")

        with _store_errors("fetch_pending_batch"):
            result = await self._session.execute(_pending_batch_query(limit))
            models = result.scalars().all()

        return [model.to_value_object() for model in models]

    async def mark_processed(self, record_id: UUID) -> bool:
        """Mark a record as delivered.

        Marking a record that is already terminal is a no-op.

        Args:
            record_id: The record to mark

        Returns:
            True if this call made the record terminal, False otherwise
        """
        stmt = (
            update(OutboxModel)
            .where(OutboxModel.id == record_id)
            .where(OutboxModel.processed_at.is_(None))
            .values(processed_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )

        with _store_errors("mark_processed"):
            result = await self._session.execute(stmt)

        return result.rowcount == 1

    async def record_failed_attempt(self, record_id: UUID, error: str) -> int:
        """Count a failed delivery attempt.

        Increments attempt_count and stores the error. The record stays
        pending. Terminal records are left untouched.

        Args:
            record_id: The record that failed
            error: Description of the failure

        Returns:
            The attempt count after this call
        """
        stmt = (
            update(OutboxModel)
            .where(OutboxModel.id == record_id)
            .where(OutboxModel.processed_at.is_(None))
            .values(
                attempt_count=OutboxModel.attempt_count + 1,
                last_error=error,
            )
            .execution_options(synchronize_session=False)
        )

        with _store_errors("record_failed_attempt"):
            await self._session.execute(stmt)

        return await self.get_attempt_count(record_id)

    async def get_attempt_count(self, record_id: UUID) -> int:
        """Return the failed attempt count of a record.

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        stmt = select(OutboxModel.attempt_count).where(OutboxModel.id == record_id)

        with _store_errors("get_attempt_count"):
            result = await self._session.execute(stmt)
            count = result.scalar_one_or_none()

        if count is None:
            raise RecordNotFoundError(record_id)
        return count

    async def move_to_dead_letter(self, record_id: UUID, error: str) -> None:
        """Make a record terminal and archive it as a dead letter.

        Sets last_error, processed_at and the dead_lettered_at marker, then
        copies the row to the dead letter archive. Terminal records are
        left untouched.

        Args:
            record_id: The record to dead-letter
            error: The failure that caused it

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        now = datetime.now(UTC)
        stmt = (
            update(OutboxModel)
            .where(OutboxModel.id == record_id)
            .where(OutboxModel.processed_at.is_(None))
            .values(
                last_error=error,
                processed_at=now,
                dead_lettered_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        with _store_errors("move_to_dead_letter"):
            result = await self._session.execute(stmt)
            if result.rowcount == 0:
                if await self.get(record_id) is None:
                    raise RecordNotFoundError(record_id)
                return

            record = await self.get(record_id)
            if record is None:
                raise RecordNotFoundError(record_id)
            self._session.add(
                DeadLetterModel(
                    id=record.id,
                    event_tag=record.event_tag,
                    topic=record.topic,
                    payload=record.payload,
                    last_error=error,
                    attempt_count=record.attempt_count,
                    occurred_at=record.occurred_at,
                    archived_at=now,
                )
            )
            await self._session.flush()

    async def purge_older_than(self, retention_days: int) -> int:
        """Delete terminal records older than the retention window.

        Pending records are never deleted, whatever their age. The dead
        letter archive is not affected.

        Args:
            retention_days: Age in days of the oldest record to keep

        Returns:
            Number of deleted records
        """
        if retention_days < 1:
            raise ValueError(f"retention_days must be >= 1, got {retention_days}")

        cutoff = datetime.now(UTC) - timedelta(days=retention_days)
        stmt = (
            delete(OutboxModel)
            .where(OutboxModel.processed_at.is_not(None))
            .where(OutboxModel.processed_at < cutoff)
            .execution_options(synchronize_session=False)
        )

        with _store_errors("purge_older_than"):
            result = await self._session.execute(stmt)

        return result.rowcount

    async def get(self, record_id: UUID) -> OutboxRecord | None:
        """Return a single record, or None if it does not exist."""
        stmt = (
            select(OutboxModel)
            .where(OutboxModel.id == record_id)
            .execution_options(populate_existing=True)
        )

        with _store_errors("get"):
            result = await self._session.execute(stmt)
            model = result.scalar_one_or_none()

        return model.to_value_object() if model is not None else None

    async def get_stats(self) -> OutboxStats:
        """Count records per lifecycle state."""
        pending = OutboxModel.processed_at.is_(None)
        dead_lettered = OutboxModel.dead_lettered_at.is_not(None)
        stmt = select(
            func.count(case((pending, 1))),
            func.count(case((~pending & ~dead_lettered, 1))),
            func.count(case((dead_lettered, 1))),
        )

        with _store_errors("get_stats"):
            result = await self._session.execute(stmt)
            pending_count, processed_count, dead_count = result.one()

        return OutboxStats(
            pending=pending_count,
            processed=processed_count,
            dead_lettered=dead_count,
        )

    async def list_dead_letters(self, limit: int = 100) -> list[DeadLetterRecord]:
        """Return archived dead letters, newest first."""
        stmt = (
            select(DeadLetterModel)
            .order_by(DeadLetterModel.archived_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )

        with _store_errors("list_dead_letters"):
            result = await self._session.execute(stmt)
            models = result.scalars().all()

        return [model.to_value_object() for model in models]

    async def replay_dead_letter(self, record_id: UUID) -> OutboxRecord:
        """Re-queue an archived dead letter as a new pending record.

        The dead-lettered outbox row stays terminal. A fresh record with a
        new id is appended and the archive entry is stamped as replayed.

        Args:
            record_id: Id of the dead-lettered record

        Returns:
            The newly appended pending record

        Raises:
            RecordNotFoundError: If no dead letter exists for the id
            DeadLetterAlreadyReplayedError: If the dead letter was already replayed
        """
        stmt = (
            select(DeadLetterModel)
            .where(DeadLetterModel.id == record_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

        with _store_errors("replay_dead_letter"):
            result = await self._session.execute(stmt)
            model = result.scalar_one_or_none()

            if model is None:
                raise RecordNotFoundError(record_id)
            if model.replayed_at is not None:
                raise DeadLetterAlreadyReplayedError(record_id)

            replay = OutboxRecord.create(
                event_tag=model.event_tag,
                topic=model.topic,
                payload=model.payload,
            )
            self._session.add(OutboxModel.from_value_object(replay))
            model.replayed_at = datetime.now(UTC)
            await self._session.flush()

        self._probe.dead_letter_replayed(record_id, replay.id)
        return replay

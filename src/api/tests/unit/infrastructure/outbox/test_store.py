"""Unit tests for OutboxStore.

Runs against SQLite through aiosqlite (see conftest). SQLite hands back
naive datetimes, so tests compare ids and counters rather than timestamps.
"""

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import SQLAlchemyError

from infrastructure.outbox.models import OutboxModel
from infrastructure.outbox.store import OutboxStore, _pending_batch_query
from shared_kernel.outbox.exceptions import (
    DeadLetterAlreadyReplayedError,
    RecordNotFoundError,
    StoreError,
)
from shared_kernel.outbox.value_objects import OutboxRecord, OutboxStatus

NOW = datetime.now(UTC)


def make_record(minutes_ago: int = 0, tag: str = "iam.role_created.v1") -> OutboxRecord:
    return OutboxRecord.create(
        event_tag=tag,
        topic="role-created",
        payload='{"role_id": "r-1"}',
        occurred_at=NOW - timedelta(minutes=minutes_ago),
    )


async def insert(session_factory, *records: OutboxRecord) -> None:
    """Insert rows directly, bypassing append() so terminal rows can be seeded."""
    async with session_factory() as session:
        async with session.begin():
            for record in records:
                session.add(OutboxModel.from_value_object(record))


async def read(session_factory, record_id) -> OutboxRecord | None:
    async with session_factory() as session:
        return await OutboxStore(session).get(record_id)


class TestAppend:
    """Tests for OutboxStore.append()."""

    @pytest.mark.asyncio
    async def test_append_is_durable_after_commit(self, session_factory):
        record = make_record()

        async with session_factory() as session:
            async with session.begin():
                await OutboxStore(session).append(record)

        stored = await read(session_factory, record.id)
        assert stored is not None
        assert stored.status == OutboxStatus.PENDING
        assert stored.attempt_count == 0

    @pytest.mark.asyncio
    async def test_append_disappears_on_rollback(self, session_factory):
        """A record only exists if the caller's transaction commits."""
        record = make_record()

        with pytest.raises(RuntimeError):
            async with session_factory() as session:
                async with session.begin():
                    await OutboxStore(session).append(record)
                    raise RuntimeError("business operation failed")

        assert await read(session_factory, record.id) is None

    @pytest.mark.asyncio
    async def test_rejects_terminal_record(self):
        store = OutboxStore(AsyncMock())
        record = replace(make_record(), processed_at=NOW)

        with pytest.raises(ValueError, match="terminal"):
            await store.append(record)

    @pytest.mark.asyncio
    async def test_reports_append_to_probe(self):
        session = MagicMock()
        probe = MagicMock()
        record = make_record()

        await OutboxStore(session, probe=probe).append(record)

        session.add.assert_called_once()
        probe.record_appended.assert_called_once_with(
            record.id, record.event_tag, record.topic
        )


class TestFetchPendingBatch:
    """Tests for OutboxStore.fetch_pending_batch()."""

    @pytest.mark.asyncio
    async def test_returns_pending_records_oldest_first(self, session_factory):
        newest, oldest, middle = make_record(1), make_record(30), make_record(10)
        await insert(session_factory, newest, oldest, middle)

        async with session_factory() as session:
            async with session.begin():
                batch = await OutboxStore(session).fetch_pending_batch(10)

        assert [r.id for r in batch] == [oldest.id, middle.id, newest.id]

    @pytest.mark.asyncio
    async def test_respects_limit(self, session_factory):
        records = [make_record(minutes) for minutes in range(5)]
        await insert(session_factory, *records)

        async with session_factory() as session:
            async with session.begin():
                batch = await OutboxStore(session).fetch_pending_batch(2)

        assert len(batch) == 2

    @pytest.mark.asyncio
    async def test_never_returns_terminal_records(self, session_factory):
        pending = make_record()
        processed = replace(make_record(5), processed_at=NOW)
        dead = replace(make_record(6), processed_at=NOW, dead_lettered_at=NOW)
        await insert(session_factory, pending, processed, dead)

        async with session_factory() as session:
            async with session.begin():
                batch = await OutboxStore(session).fetch_pending_batch(10)

        assert [r.id for r in batch] == [pending.id]

    @pytest.mark.asyncio
    async def test_rejects_non_positive_limit(self):
        with pytest.raises(ValueError):
            await OutboxStore(AsyncMock()).fetch_pending_batch(0)

    def test_claim_query_skips_locked_rows_on_postgres(self):
        """SQLite ignores row locks, so check the rendered PostgreSQL SQL."""
        sql = str(_pending_batch_query(10).compile(dialect=postgresql.dialect()))

        assert "FOR UPDATE SKIP LOCKED" in sql
        assert "outbox_messages.processed_at IS NULL" in sql
        assert "ORDER BY outbox_messages.occurred_at, outbox_messages.id" in sql
        assert "LIMIT" in sql


class TestMarkProcessed:
    """Tests for OutboxStore.mark_processed()."""

    @pytest.mark.asyncio
    async def test_marks_pending_record(self, session_factory):
        record = make_record()
        await insert(session_factory, record)

        async with session_factory() as session:
            async with session.begin():
                changed = await OutboxStore(session).mark_processed(record.id)

        assert changed is True
        stored = await read(session_factory, record.id)
        assert stored.status == OutboxStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_is_idempotent(self, session_factory):
        """Marking twice leaves the first timestamp in place."""
        record = make_record()
        await insert(session_factory, record)

        async with session_factory() as session:
            async with session.begin():
                await OutboxStore(session).mark_processed(record.id)
        first = await read(session_factory, record.id)

        async with session_factory() as session:
            async with session.begin():
                changed = await OutboxStore(session).mark_processed(record.id)
        second = await read(session_factory, record.id)

        assert changed is False
        assert second.processed_at == first.processed_at

    @pytest.mark.asyncio
    async def test_does_not_touch_dead_lettered_record(self, session_factory):
        record = replace(make_record(), processed_at=NOW, dead_lettered_at=NOW)
        await insert(session_factory, record)

        async with session_factory() as session:
            async with session.begin():
                changed = await OutboxStore(session).mark_processed(record.id)

        assert changed is False
        assert (await read(session_factory, record.id)).is_dead_lettered


class TestFailedAttempts:
    """Tests for record_failed_attempt() and get_attempt_count()."""

    @pytest.mark.asyncio
    async def test_increments_and_stores_error(self, session_factory):
        record = make_record()
        await insert(session_factory, record)

        async with session_factory() as session:
            async with session.begin():
                store = OutboxStore(session)
                assert await store.record_failed_attempt(record.id, "first") == 1
                assert await store.record_failed_attempt(record.id, "second") == 2

        stored = await read(session_factory, record.id)
        assert stored.attempt_count == 2
        assert stored.last_error == "second"
        assert stored.is_pending

    @pytest.mark.asyncio
    async def test_terminal_record_is_left_untouched(self, session_factory):
        record = replace(make_record(), processed_at=NOW)
        await insert(session_factory, record)

        async with session_factory() as session:
            async with session.begin():
                count = await OutboxStore(session).record_failed_attempt(
                    record.id, "late failure"
                )

        assert count == 0
        assert (await read(session_factory, record.id)).last_error is None

    @pytest.mark.asyncio
    async def test_unknown_record_raises(self, session_factory):
        async with session_factory() as session:
            with pytest.raises(RecordNotFoundError):
                await OutboxStore(session).get_attempt_count(uuid4())


class TestMoveToDeadLetter:
    """Tests for OutboxStore.move_to_dead_letter()."""

    @pytest.mark.asyncio
    async def test_marks_terminal_and_archives(self, session_factory):
        record = replace(make_record(), attempt_count=5)
        await insert(session_factory, record)

        async with session_factory() as session:
            async with session.begin():
                await OutboxStore(session).move_to_dead_letter(record.id, "gave up")

        stored = await read(session_factory, record.id)
        assert stored.status == OutboxStatus.DEAD_LETTERED
        assert stored.processed_at is not None
        assert stored.last_error == "gave up"

        async with session_factory() as session:
            dead_letters = await OutboxStore(session).list_dead_letters()
        assert [d.id for d in dead_letters] == [record.id]
        assert dead_letters[0].attempt_count == 5
        assert dead_letters[0].last_error == "gave up"
        assert dead_letters[0].payload == record.payload

    @pytest.mark.asyncio
    async def test_terminal_record_is_not_archived_twice(self, session_factory):
        record = make_record()
        await insert(session_factory, record)

        for _ in range(2):
            async with session_factory() as session:
                async with session.begin():
                    await OutboxStore(session).move_to_dead_letter(record.id, "x")

        async with session_factory() as session:
            assert len(await OutboxStore(session).list_dead_letters()) == 1

    @pytest.mark.asyncio
    async def test_unknown_record_raises(self, session_factory):
        async with session_factory() as session:
            async with session.begin():
                with pytest.raises(RecordNotFoundError):
                    await OutboxStore(session).move_to_dead_letter(uuid4(), "x")

    @pytest.mark.asyncio
    async def test_row_deleted_between_update_and_archive_raises(self):
        """A concurrent purge can remove the row after it was marked."""
        session = AsyncMock()
        missing = MagicMock()
        missing.scalar_one_or_none.return_value = None
        session.execute.side_effect = [MagicMock(rowcount=1), missing]

        with pytest.raises(RecordNotFoundError):
            await OutboxStore(session).move_to_dead_letter(uuid4(), "x")

        session.add.assert_not_called()


class TestPurgeOlderThan:
    """Tests for OutboxStore.purge_older_than()."""

    @pytest.mark.asyncio
    async def test_deletes_only_old_terminal_records(self, session_factory):
        old = NOW - timedelta(days=10)
        old_processed = replace(make_record(), processed_at=old)
        old_dead = replace(make_record(), processed_at=old, dead_lettered_at=old)
        recent_processed = replace(make_record(), processed_at=NOW)
        old_pending = OutboxRecord.create(
            "iam.role_created.v1", "role-created", "{}", occurred_at=old
        )
        await insert(
            session_factory, old_processed, old_dead, recent_processed, old_pending
        )

        async with session_factory() as session:
            async with session.begin():
                deleted = await OutboxStore(session).purge_older_than(7)

        assert deleted == 2
        assert await read(session_factory, old_processed.id) is None
        assert await read(session_factory, old_dead.id) is None
        assert await read(session_factory, recent_processed.id) is not None
        assert await read(session_factory, old_pending.id) is not None

    @pytest.mark.asyncio
    async def test_dead_letter_archive_survives_purge(self, session_factory):
        record = make_record()
        await insert(session_factory, record)

        async with session_factory() as session:
            async with session.begin():
                await OutboxStore(session).move_to_dead_letter(record.id, "x")

        # Age the terminal row past the retention window
        async with session_factory() as session:
            async with session.begin():
                model = await session.get(OutboxModel, record.id)
                model.processed_at = NOW - timedelta(days=30)

        async with session_factory() as session:
            async with session.begin():
                store = OutboxStore(session)
                assert await store.purge_older_than(7) == 1

        async with session_factory() as session:
            assert len(await OutboxStore(session).list_dead_letters()) == 1

    @pytest.mark.asyncio
    async def test_rejects_non_positive_days(self):
        with pytest.raises(ValueError):
            await OutboxStore(AsyncMock()).purge_older_than(0)


class TestStatsAndReplay:
    """Tests for get_stats() and replay_dead_letter()."""

    @pytest.mark.asyncio
    async def test_counts_records_per_state(self, session_factory):
        await insert(
            session_factory,
            make_record(),
            make_record(),
            replace(make_record(), processed_at=NOW),
            replace(make_record(), processed_at=NOW, dead_lettered_at=NOW),
        )

        async with session_factory() as session:
            stats = await OutboxStore(session).get_stats()

        assert (stats.pending, stats.processed, stats.dead_lettered) == (2, 1, 1)
        assert stats.total == 4

    @pytest.mark.asyncio
    async def test_replay_appends_new_pending_record(self, session_factory):
        record = make_record()
        await insert(session_factory, record)

        async with session_factory() as session:
            async with session.begin():
                await OutboxStore(session).move_to_dead_letter(record.id, "x")

        probe = MagicMock()
        async with session_factory() as session:
            async with session.begin():
                replay = await OutboxStore(session, probe=probe).replay_dead_letter(
                    record.id
                )

        assert replay.id != record.id
        assert replay.is_pending
        assert replay.payload == record.payload
        assert (await read(session_factory, replay.id)).is_pending
        assert (await read(session_factory, record.id)).is_dead_lettered
        probe.dead_letter_replayed.assert_called_once_with(record.id, replay.id)

        async with session_factory() as session:
            (dead_letter,) = await OutboxStore(session).list_dead_letters()
        assert dead_letter.is_replayed

    @pytest.mark.asyncio
    async def test_replay_twice_is_rejected(self, session_factory):
        record = make_record()
        await insert(session_factory, record)

        async with session_factory() as session:
            async with session.begin():
                store = OutboxStore(session)
                await store.move_to_dead_letter(record.id, "x")
                await store.replay_dead_letter(record.id)

        async with session_factory() as session:
            async with session.begin():
                with pytest.raises(
                    DeadLetterAlreadyReplayedError, match="already replayed"
                ):
                    await OutboxStore(session).replay_dead_letter(record.id)

    @pytest.mark.asyncio
    async def test_replay_unknown_dead_letter_raises(self, session_factory):
        async with session_factory() as session:
            async with session.begin():
                with pytest.raises(RecordNotFoundError):
                    await OutboxStore(session).replay_dead_letter(uuid4())


class TestErrorTranslation:
    @pytest.mark.asyncio
    async def test_sqlalchemy_errors_become_store_errors(self):
        session = AsyncMock()
        session.execute.side_effect = SQLAlchemyError("connection lost")

        with pytest.raises(StoreError, match="fetch_pending_batch"):
            await OutboxStore(session).fetch_pending_batch(10)

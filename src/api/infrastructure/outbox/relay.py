"""One bounded relay cycle over the outbox.

A cycle claims a batch of pending records, publishes each one and writes
the outcome back in a single transaction. Failures are handled on two
levels:

- Record level: a payload that cannot be decoded, or a publish call that
  keeps failing, only affects its own record (retry next cycle or
  dead-letter). The rest of the batch carries on.
- Batch level: anything else (a lost connection, a failing store
  statement) rolls the whole transaction back and propagates, so none of
  the batch's outcomes become durable and the next cycle starts over.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable
from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from infrastructure.outbox.store import OutboxStore
from shared_kernel.outbox.exceptions import MalformedPayloadError
from shared_kernel.outbox.observability import DefaultRelayProbe, RelayProbe
from shared_kernel.outbox.ports import EventPublisher, IOutboxStore
from shared_kernel.outbox.registry import EventDecoderRegistry
from shared_kernel.outbox.value_objects import CycleResult, OutboxRecord

StoreFactory = Callable[[AsyncSession], IOutboxStore]


class RecordOutcome(StrEnum):
    """What a cycle did with one record."""

    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"
    RETRY = "retry"
    DEAD_LETTERED = "dead_lettered"


def describe_error(error: BaseException) -> str:
    """Format an exception the way it is stored in last_error."""
    return f"{type(error).__name__}: {error}"


class RelayCycle:
    """Processes one batch of pending outbox records.

    Each record is published through the injected publisher with a small
    in-cycle retry loop. Leaving a failed record pending for the next
    cycle is the primary retry mechanism; the in-cycle loop only smooths
    over short blips.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: EventDecoderRegistry,
        publisher: EventPublisher,
        probe: RelayProbe | None = None,
        store_factory: StoreFactory = OutboxStore,
        max_attempts: int = 5,
        in_cycle_attempts: int = 2,
        retry_interval_seconds: float = 1.0,
    ) -> None:
        """Initialize the cycle.

        Args:
            session_factory: Factory for creating database sessions
            registry: Decoders for every event tag the relay may meet
            publisher: Message bus publisher
            probe: Observability probe for logging/metrics
            store_factory: Builds a store bound to the cycle's session
            max_attempts: Failed cycles before a record is dead-lettered
            in_cycle_attempts: Publish tries per record within one cycle,
                capped at max_attempts
            retry_interval_seconds: Pause between in-cycle publish tries
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        if in_cycle_attempts < 1:
            raise ValueError(
                f"in_cycle_attempts must be >= 1, got {in_cycle_attempts}"
            )
        if retry_interval_seconds < 0:
            raise ValueError("retry_interval_seconds must not be negative")

        self._session_factory = session_factory
        self._registry = registry
        self._publisher = publisher
        self._probe = probe or DefaultRelayProbe()
        self._store_factory = store_factory
        self._max_attempts = max_attempts
        self._in_cycle_attempts = min(in_cycle_attempts, max_attempts)
        self._retry_interval = retry_interval_seconds

    async def run(self, batch_size: int) -> CycleResult:
        """Fetch and process one batch of pending records.

        Args:
            batch_size: Maximum number of records to claim

        Returns:
            Counters describing what happened to the batch

        Raises:
            Exception: Any infrastructure failure, after rolling back
        """
        outcomes: Counter[RecordOutcome] = Counter()

        async with self._session_factory() as session:
            async with session.begin():
                store = self._store_factory(session)
                records = await store.fetch_pending_batch(batch_size)

                if records:
                    self._probe.batch_fetched(len(records))

                for record in records:
                    outcomes[await self._process_record(store, record)] += 1

        result = CycleResult(
            fetched=len(records),
            processed=outcomes[RecordOutcome.PROCESSED],
            retried=outcomes[RecordOutcome.RETRY],
            dead_lettered=outcomes[RecordOutcome.DEAD_LETTERED],
            already_processed=outcomes[RecordOutcome.ALREADY_PROCESSED],
        )
        self._probe.cycle_completed(result)
        return result

    async def _process_record(
        self, store: IOutboxStore, record: OutboxRecord
    ) -> RecordOutcome:
        """Decode, publish and record the outcome for one record.

        Store calls are not guarded here: a store failure must abort the
        whole batch.
        """
        try:
            event = self._registry.decode(record.event_tag, record.payload)
        except MalformedPayloadError as e:
            error = describe_error(e)
            await store.record_failed_attempt(record.id, error)
            await store.move_to_dead_letter(record.id, error)
            self._probe.record_dead_lettered(
                record.id, record.event_tag, "malformed_payload", error
            )
            return RecordOutcome.DEAD_LETTERED

        error = await self._publish_with_retry(record, event)

        if error is None:
            if await store.mark_processed(record.id):
                self._probe.record_processed(record.id, record.event_tag, record.topic)
                return RecordOutcome.PROCESSED
            self._probe.record_already_processed(record.id)
            return RecordOutcome.ALREADY_PROCESSED

        attempt_count = await store.record_failed_attempt(record.id, error)
        if attempt_count >= self._max_attempts:
            await store.move_to_dead_letter(record.id, error)
            self._probe.record_dead_lettered(
                record.id, record.event_tag, "max_attempts_exceeded", error
            )
            return RecordOutcome.DEAD_LETTERED

        self._probe.record_failed(record.id, attempt_count, error)
        return RecordOutcome.RETRY

    async def _publish_with_retry(self, record: OutboxRecord, event: object) -> str | None:
        """Publish with a bounded number of tries and a fixed pause.

        Returns:
            None on success, otherwise the description of the last failure
        """
        last_error: str | None = None

        for attempt in range(1, self._in_cycle_attempts + 1):
            try:
                await self._publisher.publish(record.topic, event)
                return None
            except Exception as e:
                last_error = describe_error(e)

            if attempt < self._in_cycle_attempts:
                self._probe.publish_retry_scheduled(
                    record.id, attempt, self._retry_interval, last_error
                )
                await asyncio.sleep(self._retry_interval)

        return last_error

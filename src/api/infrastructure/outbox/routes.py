"""Operator endpoints for dead-lettered outbox records."""

from collections.abc import AsyncIterator
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from infrastructure.outbox.store import OutboxStore
from shared_kernel.outbox.exceptions import (
    DeadLetterAlreadyReplayedError,
    RecordNotFoundError,
)
from shared_kernel.outbox.value_objects import DeadLetterRecord, OutboxRecord


class DeadLetterResponse(BaseModel):
    """Response model for an archived dead letter."""

    id: UUID = Field(..., description="Id of the original outbox record")
    event_tag: str = Field(..., description="Stable name of the event schema")
    topic: str = Field(..., description="Destination topic")
    payload: str = Field(..., description="Serialized event body")
    last_error: str | None = Field(None, description="Failure that dead-lettered it")
    attempt_count: int = Field(..., description="Failed delivery attempts")
    occurred_at: datetime = Field(..., description="When the event was recorded")
    archived_at: datetime = Field(..., description="When it was dead-lettered")
    replayed_at: datetime | None = Field(None, description="When it was re-queued")

    @classmethod
    def from_domain(cls, dead_letter: DeadLetterRecord) -> "DeadLetterResponse":
        return cls(
            id=dead_letter.id,
            event_tag=dead_letter.event_tag,
            topic=dead_letter.topic,
            payload=dead_letter.payload,
            last_error=dead_letter.last_error,
            attempt_count=dead_letter.attempt_count,
            occurred_at=dead_letter.occurred_at,
            archived_at=dead_letter.archived_at,
            replayed_at=dead_letter.replayed_at,
        )


class ReplayResponse(BaseModel):
    """Response model for a re-queued dead letter."""

    id: UUID = Field(..., description="Id of the new pending record")
    replayed_from: UUID = Field(..., description="Id of the dead letter")
    event_tag: str = Field(..., description="Stable name of the event schema")
    topic: str = Field(..., description="Destination topic")

    @classmethod
    def from_domain(
        cls, record: OutboxRecord, replayed_from: UUID
    ) -> "ReplayResponse":
        return cls(
            id=record.id,
            replayed_from=replayed_from,
            event_tag=record.event_tag,
            topic=record.topic,
        )


def build_dead_letter_router(
    session_factory: async_sessionmaker[AsyncSession],
) -> APIRouter:
    """Build the dead-letter routes around a session factory.

    Args:
        session_factory: Factory for the sessions each request runs in

    Returns:
        Router serving /outbox/dead-letters
    """
    router = APIRouter(prefix="/outbox", tags=["outbox"])

    async def get_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    @router.get("/dead-letters")
    async def list_dead_letters(
        session: Annotated[AsyncSession, Depends(get_session)],
        limit: Annotated[int, Query(ge=1, le=1000)] = 100,
    ) -> list[DeadLetterResponse]:
        """List archived dead letters, newest first."""
        dead_letters = await OutboxStore(session).list_dead_letters(limit)
        return [DeadLetterResponse.from_domain(d) for d in dead_letters]

    @router.post("/dead-letters/{record_id}/replay")
    async def replay_dead_letter(
        record_id: UUID,
        session: Annotated[AsyncSession, Depends(get_session)],
    ) -> ReplayResponse:
        """Re-queue a dead letter as a new pending record.

        Raises:
            HTTPException: 404 if no dead letter exists for the id
            HTTPException: 409 if the dead letter was already replayed
        """
        try:
            async with session.begin():
                record = await OutboxStore(session).replay_dead_letter(record_id)
        except RecordNotFoundError as e:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=str(e),
            ) from e
        except DeadLetterAlreadyReplayedError as e:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=str(e),
            ) from e

        return ReplayResponse.from_domain(record, replayed_from=record_id)

    return router

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.outbox_events import (
    OUTBOX_STATUS_FAILED,
    OUTBOX_STATUS_PENDING,
    OUTBOX_STATUS_SENT,
    OutboxEvent,
)


class OutboxEventsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        event_type: str,
        payload: dict[str, object],
        status: str = OUTBOX_STATUS_PENDING,
    ) -> OutboxEvent:
        event = OutboxEvent(
            event_type=event_type,
            payload=payload,
            status=status,
        )
        session.add(event)
        await session.flush()
        return event

    @staticmethod
    async def get_by_id(session: AsyncSession, event_id: int) -> OutboxEvent | None:
        return await session.get(OutboxEvent, event_id)

    @staticmethod
    async def list_pending_older_than(
        session: AsyncSession,
        *,
        event_type: str,
        older_than_utc: datetime,
        limit: int,
    ) -> list[OutboxEvent]:
        stmt = (
            select(OutboxEvent)
            .where(
                OutboxEvent.event_type == event_type,
                OutboxEvent.status == OUTBOX_STATUS_PENDING,
                OutboxEvent.created_at <= older_than_utc,
            )
            .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def mark_sent(session: AsyncSession, *, event_id: int, now_utc: datetime) -> None:
        await session.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id)
            .values(status=OUTBOX_STATUS_SENT, processed_at=now_utc)
        )

    @staticmethod
    async def record_attempt(
        session: AsyncSession,
        *,
        event_id: int,
        max_attempts: int,
        now_utc: datetime,
    ) -> int:
        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id)
            .values(attempts=OutboxEvent.attempts + 1)
            .returning(OutboxEvent.attempts)
        )
        attempts = int((await session.execute(stmt)).scalar_one())
        if attempts >= max_attempts:
            await session.execute(
                update(OutboxEvent)
                .where(OutboxEvent.id == event_id)
                .values(status=OUTBOX_STATUS_FAILED, processed_at=now_utc)
            )
        return attempts

"""Schedule events and the durable timer table that holds them until due."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sendly.core.config import settings
from sendly.db.base import as_utc, utcnow
from sendly.db.models.scheduled_event import ScheduledEvent

logger = logging.getLogger(__name__)

SCHEDULE_EVENT_NAME = "newsletter.schedule"


class ScheduleEvent(BaseModel):
    """Immutable request to run the newsletter pipeline for one subscriber."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str = Field(default=SCHEDULE_EVENT_NAME, alias="eventName")
    user_id: str
    email: str
    categories: list[str]
    frequency: str
    scheduled_for: datetime | None = None
    is_test: bool = False

    def run_at(self, now: datetime | None = None) -> datetime:
        """When the event becomes due; events without a timestamp are due immediately."""
        if self.scheduled_for is None:
            return now or utcnow()
        return as_utc(self.scheduled_for)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class EventPublisher(ABC):
    """Sink for schedule events (preference API, reactivation, and the engine itself)."""

    @abstractmethod
    async def send(self, event: ScheduleEvent) -> str:
        """Persist or enqueue an event and return its id."""
        raise NotImplementedError


class DatabaseEventQueue(EventPublisher):
    """Schedule events stored as rows in ``scheduled_events`` keyed by due time.

    Operates on the caller's session; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def send(self, event: ScheduleEvent) -> str:
        run_at = event.run_at()
        if not event.is_test:
            existing = await self._session.execute(
                select(ScheduledEvent.id).where(
                    ScheduledEvent.user_id == event.user_id,
                    ScheduledEvent.status == "pending",
                    ScheduledEvent.is_test.is_(False),
                    ScheduledEvent.run_at == run_at,
                )
            )
            existing_id = existing.scalar_one_or_none()
            if existing_id is not None:
                logger.info(
                    "Schedule event already pending",
                    extra={"user_id": event.user_id, "event_id": existing_id},
                )
                return existing_id

        row = ScheduledEvent(
            name=event.name,
            user_id=event.user_id,
            payload=event.to_payload(),
            run_at=run_at,
            is_test=event.is_test,
            status="pending",
            attempts=0,
        )
        self._session.add(row)
        await self._session.flush()
        logger.info(
            "Schedule event queued",
            extra={
                "user_id": event.user_id,
                "event_id": row.id,
                "run_at": run_at.isoformat(),
                "is_test": event.is_test,
            },
        )
        return row.id

    async def cancel_pending(self, user_id: str) -> int:
        """Cancel pending cadence events so a re-save starts exactly one new chain."""
        result = await self._session.execute(
            update(ScheduledEvent)
            .where(
                ScheduledEvent.user_id == user_id,
                ScheduledEvent.status == "pending",
                ScheduledEvent.is_test.is_(False),
            )
            .values(status="cancelled", updated_at=utcnow())
        )
        cancelled = result.rowcount or 0
        if cancelled:
            logger.info(
                "Cancelled pending schedule events",
                extra={"user_id": user_id, "count": cancelled},
            )
        return cancelled

    async def list_pending(self, user_id: str) -> list[ScheduledEvent]:
        result = await self._session.execute(
            select(ScheduledEvent)
            .where(ScheduledEvent.user_id == user_id, ScheduledEvent.status == "pending")
            .order_by(ScheduledEvent.run_at)
        )
        return list(result.scalars().all())

    async def claim_due(
        self, now: datetime, limit: int, stale_after: timedelta | None = None
    ) -> list[str]:
        """Move up to ``limit`` due events to ``dispatched`` and return their ids.

        Due means pending with ``run_at <= now``, or dispatched and untouched for
        ``stale_after`` (a run that never reached a worker). Row locks are skipped
        so concurrent dispatchers never claim the same event.
        """
        if stale_after is None:
            stale_after = timedelta(minutes=settings.dispatch_stale_after_minutes)
        stale_before = now - stale_after
        result = await self._session.execute(
            select(ScheduledEvent)
            .where(
                ScheduledEvent.run_at <= now,
                or_(
                    ScheduledEvent.status == "pending",
                    and_(
                        ScheduledEvent.status == "dispatched",
                        ScheduledEvent.updated_at <= stale_before,
                    ),
                ),
            )
            .order_by(ScheduledEvent.run_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        rows = list(result.scalars().all())
        for row in rows:
            if row.status == "dispatched":
                logger.warning(
                    "Reclaiming stale dispatched event",
                    extra={"user_id": row.user_id, "event_id": row.id},
                )
            row.status = "dispatched"
            row.attempts += 1
            row.updated_at = now
        await self._session.flush()
        return [row.id for row in rows]

    async def release(self, event_ids: Sequence[str]) -> None:
        """Return claimed events that never reached a worker to ``pending``."""
        if not event_ids:
            return
        await self._session.execute(
            update(ScheduledEvent)
            .where(ScheduledEvent.id.in_(event_ids), ScheduledEvent.status == "dispatched")
            .values(status="pending", updated_at=utcnow())
        )

    async def get(self, event_id: str) -> ScheduledEvent | None:
        return await self._session.get(ScheduledEvent, event_id)

    async def mark(self, event_id: str, status: str) -> None:
        await self._session.execute(
            update(ScheduledEvent)
            .where(ScheduledEvent.id == event_id)
            .values(status=status, updated_at=utcnow())
        )


class TransactionalEventPublisher(EventPublisher):
    """Publishes each event in its own committed transaction.

    Used inside pipeline steps, where the successor event must be durable as soon
    as the step completes.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def send(self, event: ScheduleEvent) -> str:
        async with self._session_maker() as session:
            try:
                event_id = await DatabaseEventQueue(session).send(event)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        return event_id

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sendly.db.models.newsletter_run import NewsletterError, NewsletterQueueEntry

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 2000


class RunAudit:
    """Writes run outcomes to ``newsletter_queue`` and failures to ``newsletter_errors``."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def record_outcome(
        self, user_id: str, run_id: str, status: str, newsletter_data: dict[str, Any]
    ) -> None:
        """One outcome row per run; replays of a finished run leave it untouched."""
        async with self._session_maker() as session:
            existing = await session.execute(
                select(NewsletterQueueEntry.id).where(NewsletterQueueEntry.run_id == run_id)
            )
            if existing.scalar_one_or_none() is not None:
                return
            session.add(
                NewsletterQueueEntry(
                    user_id=user_id,
                    run_id=run_id,
                    status=status,
                    newsletter_data=newsletter_data,
                )
            )
            await session.commit()

    async def record_error(self, user_id: str, run_id: str, error: BaseException) -> None:
        message = f"{type(error).__name__}: {error}"[:MAX_ERROR_MESSAGE_LENGTH]
        async with self._session_maker() as session:
            session.add(NewsletterError(user_id=user_id, run_id=run_id, error_message=message))
            await session.commit()
        logger.info("Run error recorded", extra={"user_id": user_id, "run_id": run_id})

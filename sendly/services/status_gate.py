"""Activity-status gate: decides whether a subscriber's run may proceed."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sendly.db.models.user_preference import UserPreference

logger = logging.getLogger(__name__)

REASON_NOT_FOUND = "preferences_not_found"
REASON_PAUSED = "newsletter_paused"
REASON_NO_CATEGORIES = "no_categories"
REASON_CHECK_FAILED = "status_check_failed"


@dataclass(frozen=True)
class GateResult:
    is_active: bool
    reason: str | None = None
    frequency: str | None = None

    def to_dict(self) -> dict[str, str | bool | None]:
        return {"isActive": self.is_active, "reason": self.reason, "frequency": self.frequency}

    @classmethod
    def from_dict(cls, data: dict[str, str | bool | None]) -> GateResult:
        reason = data.get("reason")
        frequency = data.get("frequency")
        return cls(
            is_active=bool(data.get("isActive")),
            reason=reason if isinstance(reason, str) else None,
            frequency=frequency if isinstance(frequency, str) else None,
        )


class ActivityStatusGate:
    """Fails closed: a missing record or a failed read both skip the run."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def check(self, user_id: str) -> GateResult:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(UserPreference).where(UserPreference.user_id == user_id)
                )
                preference = result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception("Status check failed", extra={"user_id": user_id})
            return GateResult(is_active=False, reason=REASON_CHECK_FAILED)

        if preference is None:
            logger.info("No preferences on record", extra={"user_id": user_id})
            return GateResult(is_active=False, reason=REASON_NOT_FOUND)
        if not preference.is_active:
            return GateResult(
                is_active=False, reason=REASON_PAUSED, frequency=preference.frequency
            )
        if not preference.categories:
            return GateResult(
                is_active=False, reason=REASON_NO_CATEGORIES, frequency=preference.frequency
            )
        return GateResult(is_active=True, frequency=preference.frequency)

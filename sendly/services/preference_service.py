"""Preference service - subscriber preference upserts and the schedule events they emit."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from sendly.core.errors import ServiceError
from sendly.db.base import utcnow
from sendly.db.models.user_preference import FREQUENCY_VALUES, UserPreference
from sendly.workflows.events import DatabaseEventQueue
from sendly.workflows.schedule import cadence_event, immediate_event, reactivation_events

logger = logging.getLogger(__name__)

MAX_CATEGORIES = 20
MAX_CATEGORY_LENGTH = 100


class PreferenceError(ServiceError):
    """Base error for preference failures."""


class InvalidPreferencesError(PreferenceError):
    def __init__(self, details: list[dict[str, str]]) -> None:
        super().__init__("Preferences are invalid.", "invalid_preferences", details)


class PreferencesNotFoundError(PreferenceError):
    def __init__(self, message: str = "No newsletter preferences saved yet.") -> None:
        super().__init__(message, "preferences_not_found")


def normalize_categories(categories: Sequence[str]) -> list[str]:
    """Trim, drop blanks and drop case-insensitive repeats, keeping first-seen order."""
    seen: set[str] = set()
    normalized: list[str] = []
    for category in categories:
        cleaned = " ".join(category.split())
        key = cleaned.casefold()
        if cleaned and key not in seen:
            seen.add(key)
            normalized.append(cleaned)
    return normalized


def validate_preferences(
    categories: Sequence[str], frequency: str, email: str
) -> tuple[list[str], str, str]:
    """Return normalized values or raise ``InvalidPreferencesError`` listing every bad field."""
    errors: list[dict[str, str]] = []
    normalized = normalize_categories(categories)
    if not normalized:
        errors.append({"field": "categories", "message": "Select at least one category."})
    elif len(normalized) > MAX_CATEGORIES:
        errors.append(
            {"field": "categories", "message": f"Select at most {MAX_CATEGORIES} categories."}
        )
    elif any(len(category) > MAX_CATEGORY_LENGTH for category in normalized):
        errors.append(
            {
                "field": "categories",
                "message": f"Categories must be at most {MAX_CATEGORY_LENGTH} characters.",
            }
        )

    if frequency not in FREQUENCY_VALUES:
        errors.append(
            {
                "field": "frequency",
                "message": f"Frequency must be one of {', '.join(FREQUENCY_VALUES)}.",
            }
        )

    cleaned_email = email.strip()
    if "@" not in cleaned_email:
        errors.append({"field": "email", "message": "Enter a valid email address."})

    if errors:
        raise InvalidPreferencesError(errors)
    return normalized, frequency, cleaned_email


async def ensure_preference_row(
    session: AsyncSession, user_id: str, **values: Any
) -> UserPreference:
    """Return the subscriber's row, inserting it with ``values`` when it does not exist.

    The insert is ``ON CONFLICT DO NOTHING`` on ``user_id`` so concurrent first
    writes for one subscriber converge on a single row instead of failing.
    """
    insert = sqlite_insert if session.get_bind().dialect.name == "sqlite" else postgresql_insert
    await session.execute(
        insert(UserPreference)
        .values(id=str(uuid.uuid4()), user_id=user_id, **values)
        .on_conflict_do_nothing(index_elements=[UserPreference.user_id])
    )
    result = await session.execute(
        select(UserPreference).where(UserPreference.user_id == user_id)
    )
    return result.scalar_one()


class PreferenceService:
    """Session-scoped preference operations. The caller owns the transaction."""

    def __init__(
        self, session: AsyncSession, clock: Callable[[], datetime] = utcnow
    ) -> None:
        self._session = session
        self._events = DatabaseEventQueue(session)
        self._clock = clock

    async def _find(self, user_id: str) -> UserPreference | None:
        result = await self._session.execute(
            select(UserPreference).where(UserPreference.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_preferences(self, user_id: str) -> UserPreference:
        preference = await self._find(user_id)
        if preference is None:
            raise PreferencesNotFoundError()
        return preference

    async def save_preferences(
        self,
        user_id: str,
        categories: Sequence[str],
        frequency: str,
        email: str,
        *,
        send_now: bool = True,
    ) -> tuple[UserPreference, list[str]]:
        """Create or update the subscriber's preferences and restart their schedule.

        Returns the stored record and the ids of the schedule events emitted.

        Raises:
            InvalidPreferencesError: When any field fails validation; nothing is written.
        """
        categories, frequency, email = validate_preferences(categories, frequency, email)
        now = self._clock()

        preference = await ensure_preference_row(
            self._session,
            user_id,
            categories=categories,
            frequency=frequency,
            email=email,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        preference.categories = categories
        preference.frequency = frequency
        preference.email = email
        preference.is_active = True
        preference.updated_at = now
        await self._session.flush()

        await self._events.cancel_pending(user_id)
        event_ids = [await self._events.send(cadence_event(preference, now))]
        if send_now:
            event_ids.append(await self._events.send(immediate_event(preference, now)))

        logger.info(
            "Preferences saved",
            extra={"user_id": user_id, "frequency": frequency, "event_count": len(event_ids)},
        )
        return preference, event_ids

    async def set_active(self, user_id: str, is_active: bool) -> tuple[UserPreference, list[str]]:
        """Pause or resume. Resuming a paused subscriber emits the reactivation events."""
        preference = await self.get_preferences(user_id)
        was_active = preference.is_active
        now = self._clock()
        preference.is_active = is_active
        preference.updated_at = now
        await self._session.flush()

        event_ids: list[str] = []
        if is_active and not was_active:
            await self._events.cancel_pending(user_id)
            for event in reactivation_events(preference, now):
                event_ids.append(await self._events.send(event))
            logger.info("Newsletter resumed", extra={"user_id": user_id})
        elif not is_active and was_active:
            logger.info("Newsletter paused", extra={"user_id": user_id})
        return preference, event_ids

    async def send_test(self, user_id: str) -> str:
        """Queue a one-off send of the current preferences."""
        preference = await self.get_preferences(user_id)
        if not preference.is_active:
            raise InvalidPreferencesError(
                [{"field": "is_active", "message": "Resume your newsletter to send a test."}]
            )
        return await self._events.send(immediate_event(preference, self._clock()))


def preference_service_factory_provider() -> Callable[[AsyncSession], PreferenceService]:
    def factory(session: AsyncSession) -> PreferenceService:
        return PreferenceService(session)

    return factory

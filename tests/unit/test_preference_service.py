from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sendly.db.base import as_utc
from sendly.db.models.scheduled_event import ScheduledEvent
from sendly.db.models.user_preference import UserPreference
from sendly.services.preference_service import (
    InvalidPreferencesError,
    PreferenceService,
    PreferencesNotFoundError,
    ensure_preference_row,
    normalize_categories,
    validate_preferences,
)

NOW = datetime(2026, 3, 2, 14, 0, tzinfo=UTC)


class SteppingClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


async def _events(session: AsyncSession, status: str = "pending") -> list[ScheduledEvent]:
    result = await session.execute(
        select(ScheduledEvent)
        .where(ScheduledEvent.status == status)
        .order_by(ScheduledEvent.run_at)
    )
    return list(result.scalars().all())


def test_normalize_categories_trims_and_dedupes() -> None:
    assert normalize_categories([" AI ", "ai", "", "machine   learning"]) == [
        "AI",
        "machine learning",
    ]


def test_validate_preferences_reports_every_bad_field() -> None:
    with pytest.raises(InvalidPreferencesError) as exc_info:
        validate_preferences([], "hourly", "not-an-email")

    fields = [item["field"] for item in exc_info.value.details]
    assert fields == ["categories", "frequency", "email"]
    assert exc_info.value.error_code == "invalid_preferences"


@pytest.mark.asyncio
async def test_save_creates_preferences_and_schedules(db_session: AsyncSession) -> None:
    # Arrange
    service = PreferenceService(db_session, clock=lambda: NOW)

    # Act
    preference, event_ids = await service.save_preferences(
        "user-1", ["ai", "blockchain"], "weekly", "x@example.com"
    )

    # Assert
    assert preference.is_active is True
    assert len(event_ids) == 2
    events = await _events(db_session)
    assert [event.is_test for event in events] == [True, False]
    assert as_utc(events[0].run_at) == NOW
    assert as_utc(events[1].run_at) == datetime(2026, 3, 9, 9, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_save_without_send_now_only_schedules_cadence(db_session: AsyncSession) -> None:
    service = PreferenceService(db_session, clock=lambda: NOW)

    _, event_ids = await service.save_preferences(
        "user-1", ["ai"], "daily", "x@example.com", send_now=False
    )

    assert len(event_ids) == 1
    assert [event.is_test for event in await _events(db_session)] == [False]


@pytest.mark.asyncio
async def test_resave_updates_in_place_and_keeps_one_chain(db_session: AsyncSession) -> None:
    # Arrange
    clock = SteppingClock(NOW)
    service = PreferenceService(db_session, clock=clock)
    first, _ = await service.save_preferences(
        "user-1", ["ai"], "weekly", "x@example.com", send_now=False
    )
    first_updated = as_utc(first.updated_at)

    # Act
    clock.now = NOW + timedelta(hours=1)
    second, _ = await service.save_preferences(
        "user-1", ["ai", "space"], "daily", "x@example.com", send_now=False
    )

    # Assert
    rows = (await db_session.execute(select(UserPreference))).scalars().all()
    assert len(rows) == 1
    assert second.categories == ["ai", "space"]
    assert as_utc(second.updated_at) > first_updated
    pending = await _events(db_session)
    assert len(pending) == 1
    assert pending[0].payload["frequency"] == "daily"
    assert len(await _events(db_session, "cancelled")) == 1


@pytest.mark.asyncio
async def test_save_after_concurrent_insert_updates_that_row(
    session_maker: async_sessionmaker[AsyncSession], db_session: AsyncSession
) -> None:
    # Arrange
    async with session_maker() as other:
        other.add(
            UserPreference(
                user_id="user-1",
                categories=["ai"],
                frequency="weekly",
                email="x@example.com",
                is_active=False,
            )
        )
        await other.commit()

    service = PreferenceService(db_session, clock=lambda: NOW)

    # Act
    preference, event_ids = await service.save_preferences(
        "user-1", ["space"], "daily", "y@example.com", send_now=False
    )

    # Assert
    rows = (await db_session.execute(select(UserPreference))).scalars().all()
    assert [row.id for row in rows] == [preference.id]
    assert preference.categories == ["space"]
    assert preference.email == "y@example.com"
    assert preference.is_active is True
    assert len(event_ids) == 1


@pytest.mark.asyncio
async def test_ensure_preference_row_keeps_existing_values(db_session: AsyncSession) -> None:
    # Arrange
    first = await ensure_preference_row(
        db_session, "user-1", categories=["ai"], frequency="weekly", email="x@example.com"
    )

    # Act
    second = await ensure_preference_row(
        db_session, "user-1", categories=["space"], frequency="daily", email="y@example.com"
    )

    # Assert
    assert second.id == first.id
    assert second.categories == ["ai"]
    assert len((await db_session.execute(select(UserPreference))).scalars().all()) == 1


@pytest.mark.asyncio
async def test_invalid_save_writes_nothing(db_session: AsyncSession) -> None:
    service = PreferenceService(db_session, clock=lambda: NOW)

    with pytest.raises(InvalidPreferencesError):
        await service.save_preferences("user-1", [], "weekly", "x@example.com")

    assert (await db_session.execute(select(UserPreference))).scalars().all() == []
    assert await _events(db_session) == []


@pytest.mark.asyncio
async def test_reactivation_emits_resume_and_cadence_events(db_session: AsyncSession) -> None:
    # Arrange
    service = PreferenceService(db_session, clock=lambda: NOW)
    await service.save_preferences("user-1", ["ai"], "weekly", "x@example.com", send_now=False)
    await service.set_active("user-1", False)

    # Act
    preference, event_ids = await service.set_active("user-1", True)

    # Assert
    assert preference.is_active is True
    assert len(event_ids) == 2
    events = await _events(db_session)
    assert [(as_utc(event.run_at), event.is_test) for event in events] == [
        (NOW + timedelta(minutes=5), True),
        (datetime(2026, 3, 9, 9, 0, tzinfo=UTC), False),
    ]


@pytest.mark.asyncio
async def test_set_active_without_transition_emits_nothing(db_session: AsyncSession) -> None:
    service = PreferenceService(db_session, clock=lambda: NOW)
    await service.save_preferences("user-1", ["ai"], "weekly", "x@example.com", send_now=False)

    _, event_ids = await service.set_active("user-1", True)

    assert event_ids == []
    assert len(await _events(db_session)) == 1


@pytest.mark.asyncio
async def test_unknown_user_raises_not_found(db_session: AsyncSession) -> None:
    service = PreferenceService(db_session)

    with pytest.raises(PreferencesNotFoundError):
        await service.get_preferences("nobody")
    with pytest.raises(PreferencesNotFoundError):
        await service.set_active("nobody", True)


@pytest.mark.asyncio
async def test_send_test_requires_active_subscriber(db_session: AsyncSession) -> None:
    # Arrange
    service = PreferenceService(db_session, clock=lambda: NOW)
    await service.save_preferences("user-1", ["ai"], "weekly", "x@example.com", send_now=False)

    # Act
    event_id = await service.send_test("user-1")
    await service.set_active("user-1", False)

    # Assert
    assert event_id
    with pytest.raises(InvalidPreferencesError):
        await service.send_test("user-1")

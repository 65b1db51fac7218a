"""Next-run computation for the self-chaining newsletter schedule."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import StrEnum
from zoneinfo import ZoneInfo

from sendly.core.config import settings
from sendly.db.base import as_utc
from sendly.db.models.user_preference import UserPreference
from sendly.workflows.events import ScheduleEvent

logger = logging.getLogger(__name__)


class Frequency(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"


FREQUENCY_OFFSETS: dict[Frequency, timedelta] = {
    Frequency.DAILY: timedelta(days=1),
    Frequency.WEEKLY: timedelta(days=7),
    Frequency.BIWEEKLY: timedelta(days=14),
}


def parse_frequency(value: str | None) -> Frequency:
    """Unknown or missing frequencies fall back to weekly."""
    try:
        return Frequency(value)
    except ValueError:
        logger.warning("Unknown frequency, defaulting to weekly", extra={"frequency": value})
        return Frequency.WEEKLY


def compute_next_run(
    frequency: str | None,
    now: datetime,
    *,
    delivery_hour: int | None = None,
    timezone: str | None = None,
) -> datetime:
    """Return ``now`` plus the cadence offset, pinned to the delivery hour in local time.

    The result is expressed in UTC.
    """
    hour = settings.delivery_hour if delivery_hour is None else delivery_hour
    zone = ZoneInfo(timezone or settings.schedule_timezone)
    local_now = as_utc(now).astimezone(zone)
    target = local_now + FREQUENCY_OFFSETS[parse_frequency(frequency)]
    # ZoneInfo resolves the offset from wall time, so DST shifts land on the local hour.
    target = target.replace(hour=hour, minute=0, second=0, microsecond=0)
    return as_utc(target)


def cadence_event(
    preference: UserPreference, now: datetime, *, timezone: str | None = None
) -> ScheduleEvent:
    """The next regular send for a subscriber."""
    return ScheduleEvent(
        user_id=preference.user_id,
        email=preference.email or "",
        categories=list(preference.categories),
        frequency=preference.frequency,
        scheduled_for=compute_next_run(preference.frequency, now, timezone=timezone),
        is_test=False,
    )


def immediate_event(preference: UserPreference, now: datetime) -> ScheduleEvent:
    """A one-off send due right away that never reschedules itself."""
    return ScheduleEvent(
        user_id=preference.user_id,
        email=preference.email or "",
        categories=list(preference.categories),
        frequency=preference.frequency,
        scheduled_for=as_utc(now),
        is_test=True,
    )


def reactivation_events(
    preference: UserPreference,
    now: datetime,
    *,
    delay_minutes: int | None = None,
    timezone: str | None = None,
) -> list[ScheduleEvent]:
    """Events emitted when a paused subscriber resumes.

    The first send goes out shortly after resuming; the regular cadence continues
    independently from the normal offset.
    """
    delay = settings.reactivation_delay_minutes if delay_minutes is None else delay_minutes
    resumed = ScheduleEvent(
        user_id=preference.user_id,
        email=preference.email or "",
        categories=list(preference.categories),
        frequency=preference.frequency,
        scheduled_for=as_utc(now) + timedelta(minutes=delay),
        is_test=True,
    )
    return [resumed, cadence_event(preference, now, timezone=timezone)]

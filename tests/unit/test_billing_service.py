from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any

import pytest
import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sendly.core.config import settings
from sendly.core.errors import ConfigurationError
from sendly.db.models.user_preference import UserPreference
from sendly.services.billing_service import (
    DEFAULT_CATEGORIES,
    BillingService,
    InvalidPayloadError,
    InvalidSignatureError,
    MissingSignatureError,
)


def _checkout_event(user_id: str = "user-1", price_id: str = "price_pro_test") -> dict[str, Any]:
    return {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_1",
                "customer": "cus_1",
                "subscription": "sub_1",
                "metadata": {
                    "userId": user_id,
                    "userEmail": "x@example.com",
                    "priceId": price_id,
                },
            }
        },
    }


async def _handle(
    service: BillingService, event: dict[str, Any], sign: Callable[..., str]
) -> dict[str, Any]:
    payload = json.dumps(event)
    return await service.handle_webhook(payload.encode(), sign(payload))


async def _preference(session: AsyncSession, user_id: str = "user-1") -> UserPreference:
    result = await session.execute(
        select(UserPreference).where(UserPreference.user_id == user_id)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_checkout_creates_paused_preferences_for_new_user(
    db_session: AsyncSession, stripe_signature: Callable[..., str]
) -> None:
    # Arrange
    service = BillingService(db_session)

    # Act
    result = await _handle(service, _checkout_event(), stripe_signature)

    # Assert
    assert result == {"received": True, "handled": True}
    preference = await _preference(db_session)
    assert preference.subscription_plan == "pro"
    assert preference.subscription_status == "active"
    assert preference.stripe_customer_id == "cus_1"
    assert preference.subscription_id == "sub_1"
    assert preference.is_active is False
    assert preference.categories == DEFAULT_CATEGORIES


@pytest.mark.asyncio
async def test_checkout_upgrades_existing_preferences(
    db_session: AsyncSession, stripe_signature: Callable[..., str]
) -> None:
    db_session.add(
        UserPreference(user_id="user-1", categories=["ai"], frequency="daily", email="x@e.com")
    )
    await db_session.flush()

    await _handle(
        BillingService(db_session),
        _checkout_event(price_id="price_premium_test"),
        stripe_signature,
    )

    preference = await _preference(db_session)
    assert preference.subscription_plan == "premium"
    assert preference.categories == ["ai"]
    assert preference.is_active is True


@pytest.mark.asyncio
async def test_repeated_checkout_for_new_user_keeps_one_row(
    db_session: AsyncSession, stripe_signature: Callable[..., str]
) -> None:
    # Arrange
    service = BillingService(db_session)

    # Act
    first = await _handle(service, _checkout_event(), stripe_signature)
    second = await _handle(
        service, _checkout_event(price_id="price_premium_test"), stripe_signature
    )

    # Assert
    assert first["handled"] is True
    assert second["handled"] is True
    rows = (await db_session.execute(select(UserPreference))).scalars().all()
    assert len(rows) == 1
    assert rows[0].subscription_plan == "premium"


@pytest.mark.asyncio
async def test_checkout_without_metadata_is_not_handled(
    db_session: AsyncSession, stripe_signature: Callable[..., str]
) -> None:
    event = _checkout_event()
    event["data"]["object"]["metadata"] = {}

    result = await _handle(BillingService(db_session), event, stripe_signature)

    assert result == {"received": True, "handled": False}
    assert (await db_session.execute(select(UserPreference))).scalars().all() == []


@pytest.mark.asyncio
async def test_subscription_lifecycle(
    db_session: AsyncSession, stripe_signature: Callable[..., str]
) -> None:
    # Arrange
    service = BillingService(db_session)
    await _handle(service, _checkout_event(), stripe_signature)
    subscription = {"id": "sub_2", "customer": "cus_1", "status": "past_due"}

    # Act
    await _handle(
        service,
        {"type": "customer.subscription.updated", "data": {"object": subscription}},
        stripe_signature,
    )
    updated = await _preference(db_session)
    updated_status = (updated.subscription_status, updated.subscription_id)
    await _handle(
        service,
        {"type": "customer.subscription.deleted", "data": {"object": subscription}},
        stripe_signature,
    )

    # Assert
    assert updated_status == ("past_due", "sub_2")
    deleted = await _preference(db_session)
    assert deleted.subscription_plan == "free"
    assert deleted.subscription_status == "cancelled"
    assert deleted.subscription_id is None


@pytest.mark.asyncio
async def test_unknown_event_type_is_acknowledged(
    db_session: AsyncSession, stripe_signature: Callable[..., str]
) -> None:
    result = await _handle(
        BillingService(db_session),
        {"type": "invoice.paid", "data": {"object": {}}},
        stripe_signature,
    )

    assert result == {"received": True, "handled": False}


@pytest.mark.asyncio
async def test_missing_signature_is_rejected(db_session: AsyncSession) -> None:
    with pytest.raises(MissingSignatureError):
        await BillingService(db_session).handle_webhook(b"{}", None)


@pytest.mark.asyncio
async def test_wrong_secret_is_rejected(
    db_session: AsyncSession, stripe_signature: Callable[..., str]
) -> None:
    payload = json.dumps(_checkout_event())

    with pytest.raises(InvalidSignatureError):
        await BillingService(db_session).handle_webhook(
            payload.encode(), stripe_signature(payload, secret="whsec_other")
        )


@pytest.mark.asyncio
async def test_stale_signature_is_rejected(
    db_session: AsyncSession, stripe_signature: Callable[..., str]
) -> None:
    payload = json.dumps(_checkout_event())
    signature = stripe_signature(payload, timestamp=int(time.time()) - 3600)

    with pytest.raises(InvalidSignatureError):
        await BillingService(db_session).handle_webhook(payload.encode(), signature)


@pytest.mark.asyncio
async def test_default_tolerance_accepts_recent_signature(
    db_session: AsyncSession, stripe_signature: Callable[..., str]
) -> None:
    # Arrange
    service = BillingService(db_session)
    payload = json.dumps(_checkout_event())
    recent = int(time.time()) - stripe.Webhook.DEFAULT_TOLERANCE // 2

    # Act
    fresh_event = service.verify_event(payload.encode(), stripe_signature(payload))
    recent_event = service.verify_event(
        payload.encode(), stripe_signature(payload, timestamp=recent)
    )

    # Assert
    assert fresh_event["type"] == "checkout.session.completed"
    assert recent_event == fresh_event


@pytest.mark.asyncio
async def test_signed_non_event_payload_is_rejected(
    db_session: AsyncSession, stripe_signature: Callable[..., str]
) -> None:
    payload = json.dumps(["not", "an", "event"])

    with pytest.raises(InvalidPayloadError):
        await BillingService(db_session).handle_webhook(payload.encode(), stripe_signature(payload))


@pytest.mark.asyncio
async def test_missing_webhook_secret_is_a_configuration_error(
    db_session: AsyncSession, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings, "stripe_webhook_secret", None)

    with pytest.raises(ConfigurationError):
        BillingService(db_session).verify_event(b"{}", "t=1,v1=abc")

"""Billing webhook handling: mirrors Stripe subscription state onto preferences."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sendly.core.config import settings
from sendly.core.errors import ConfigurationError, ServiceError
from sendly.db.base import utcnow
from sendly.db.models.user_preference import UserPreference
from sendly.services.preference_service import ensure_preference_row
from sendly.services.subscription_plans import FREE_PLAN, plan_for_price

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ["artificial intelligence", "machine learning"]


class BillingWebhookError(ServiceError):
    """Webhook rejected before any state changed."""


class MissingSignatureError(BillingWebhookError):
    def __init__(self) -> None:
        super().__init__("No signature provided.", "missing_signature")


class InvalidSignatureError(BillingWebhookError):
    def __init__(self) -> None:
        super().__init__("Invalid signature.", "invalid_signature")


class InvalidPayloadError(BillingWebhookError):
    def __init__(self, message: str = "Webhook payload is not a valid event.") -> None:
        super().__init__(message, "invalid_payload")


class BillingService:
    def __init__(
        self,
        session: AsyncSession,
        webhook_secret: str | None = None,
        tolerance_seconds: int = stripe.Webhook.DEFAULT_TOLERANCE,
    ) -> None:
        self._session = session
        self._webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self._tolerance_seconds = tolerance_seconds

    def verify_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """Check the ``Stripe-Signature`` header and decode the event body.

        Raises:
            ConfigurationError: When no webhook secret is configured.
            BillingWebhookError: When the signature or payload is unusable.
        """
        if not self._webhook_secret:
            raise ConfigurationError("stripe_webhook_secret", "BillingService")
        if not signature:
            raise MissingSignatureError()
        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidPayloadError() from exc
        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self._webhook_secret, self._tolerance_seconds
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("Webhook signature verification failed", extra={"reason": str(exc)})
            raise InvalidSignatureError() from exc
        try:
            event = json.loads(body)
        except ValueError as exc:
            raise InvalidPayloadError() from exc
        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            raise InvalidPayloadError()
        return event

    async def handle_webhook(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        event = self.verify_event(payload, signature)
        event_type = event["type"]
        data_object = (event.get("data") or {}).get("object") or {}
        if not isinstance(data_object, dict):
            raise InvalidPayloadError()

        if event_type == "checkout.session.completed":
            handled = await self._checkout_completed(data_object)
        elif event_type == "customer.subscription.updated":
            handled = await self._subscription_updated(data_object)
        elif event_type == "customer.subscription.deleted":
            handled = await self._subscription_deleted(data_object)
        else:
            logger.info("Unhandled webhook event type", extra={"event_type": event_type})
            handled = False
        return {"received": True, "handled": handled}

    async def _checkout_completed(self, checkout: dict[str, Any]) -> bool:
        metadata = checkout.get("metadata") or {}
        user_id = metadata.get("userId")
        user_email = metadata.get("userEmail")
        price_id = metadata.get("priceId")
        if not (user_id and user_email and price_id):
            logger.error(
                "Checkout session missing metadata",
                extra={"session_id": checkout.get("id"), "metadata_keys": sorted(metadata)},
            )
            return False

        # Paid before saving preferences: start paused until they pick categories.
        preference = await ensure_preference_row(
            self._session,
            user_id,
            email=user_email,
            categories=list(DEFAULT_CATEGORIES),
            frequency="weekly",
            is_active=False,
        )
        preference.subscription_plan = plan_for_price(price_id)
        preference.subscription_status = "active"
        preference.stripe_customer_id = checkout.get("customer")
        preference.subscription_id = checkout.get("subscription")
        preference.updated_at = utcnow()
        await self._session.flush()
        logger.info(
            "Subscription activated",
            extra={"user_id": user_id, "plan": preference.subscription_plan},
        )
        return True

    async def _by_customer(self, customer_id: Any) -> list[UserPreference]:
        if not isinstance(customer_id, str) or not customer_id:
            return []
        result = await self._session.execute(
            select(UserPreference).where(UserPreference.stripe_customer_id == customer_id)
        )
        return list(result.scalars().all())

    async def _subscription_updated(self, subscription: dict[str, Any]) -> bool:
        preferences = await self._by_customer(subscription.get("customer"))
        for preference in preferences:
            preference.subscription_status = str(subscription.get("status") or "active")
            preference.subscription_id = subscription.get("id")
            preference.updated_at = utcnow()
        await self._session.flush()
        if not preferences:
            logger.warning(
                "Subscription update for unknown customer",
                extra={"customer_id": subscription.get("customer")},
            )
        return bool(preferences)

    async def _subscription_deleted(self, subscription: dict[str, Any]) -> bool:
        preferences = await self._by_customer(subscription.get("customer"))
        for preference in preferences:
            preference.subscription_plan = FREE_PLAN
            preference.subscription_status = "cancelled"
            preference.subscription_id = None
            preference.updated_at = utcnow()
        await self._session.flush()
        return bool(preferences)


def billing_service_factory_provider() -> Callable[[AsyncSession], BillingService]:
    def factory(session: AsyncSession) -> BillingService:
        return BillingService(session)

    return factory

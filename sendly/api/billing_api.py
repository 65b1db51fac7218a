from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status

from sendly.api.dependencies import UnitOfWork, get_uow
from sendly.api.openapi_responses import RATE_LIMITED, ErrorExample, error_responses
from sendly.api.schemas.billing import PlansResponse, WebhookReceivedResponse
from sendly.core.errors import ConfigurationError, build_http_error, http_error_from_service_error
from sendly.core.rate_limit import BILLING_WEBHOOK_RATE_LIMIT, limit, rate_limit_ip_key
from sendly.services.billing_service import BillingWebhookError
from sendly.services.subscription_plans import list_plans

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/webhook",
    summary="Stripe webhook",
    description="Receives signed Stripe events and mirrors subscription state.",
    response_model=WebhookReceivedResponse,
    responses=error_responses(
        ErrorExample(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="invalid_signature",
            message="Invalid signature.",
            description="Signature or payload rejected",
        ),
        ErrorExample(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error="configuration_error",
            message="Billing webhooks are not configured.",
            description="Webhook secret missing",
        ),
        RATE_LIMITED,
    ),
)
@limit(BILLING_WEBHOOK_RATE_LIMIT, key_func=rate_limit_ip_key)
async def stripe_webhook(
    request: Request,
    uow: UnitOfWork = Depends(get_uow),
) -> WebhookReceivedResponse:
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        result = await uow.billing_service.handle_webhook(payload, signature)
    except BillingWebhookError as exc:
        raise http_error_from_service_error(status.HTTP_400_BAD_REQUEST, exc) from exc
    except ConfigurationError as exc:
        logger.error("Billing webhook received without a configured secret")
        raise build_http_error(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error=exc.error_code,
            message="Billing webhooks are not configured.",
        ) from exc
    return WebhookReceivedResponse(handled=result["handled"])


@router.get("/plans", summary="Subscription plans", response_model=PlansResponse)
def get_plans() -> PlansResponse:
    return PlansResponse(plans=list_plans())

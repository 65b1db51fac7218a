from __future__ import annotations

from pydantic import BaseModel

from sendly.services.subscription_plans import SubscriptionPlan


class WebhookReceivedResponse(BaseModel):
    received: bool = True
    handled: bool


class PlansResponse(BaseModel):
    plans: list[SubscriptionPlan]

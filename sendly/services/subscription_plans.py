from __future__ import annotations

from pydantic import BaseModel, Field

from sendly.core.config import settings

FREE_PLAN = "free"
PRO_PLAN = "pro"
PREMIUM_PLAN = "premium"


class SubscriptionPlan(BaseModel):
    id: str
    name: str
    description: str
    price: float
    price_id: str = ""
    features: list[str] = Field(default_factory=list)
    popular: bool = False


_PLANS: tuple[SubscriptionPlan, ...] = (
    SubscriptionPlan(
        id=FREE_PLAN,
        name="Free",
        description="Perfect for getting started with personalized newsletters",
        price=0,
        features=[
            "1 newsletter per week",
            "Basic categories (5 max)",
            "Email support",
            "Standard templates",
        ],
    ),
    SubscriptionPlan(
        id=PRO_PLAN,
        name="Pro",
        description="For power users who want more content and customization",
        price=9.99,
        features=[
            "3 newsletters per week",
            "All categories (unlimited)",
            "Priority support",
            "Premium templates",
            "Custom scheduling",
            "Analytics dashboard",
        ],
        popular=True,
    ),
    SubscriptionPlan(
        id=PREMIUM_PLAN,
        name="Premium",
        description="For businesses and content creators who need maximum features",
        price=19.99,
        features=[
            "Daily newsletters",
            "All categories (unlimited)",
            "24/7 priority support",
            "Custom branding",
            "Advanced analytics",
            "API access",
            "White-label options",
            "Custom integrations",
        ],
    ),
)


def _price_ids() -> dict[str, str | None]:
    return {
        PRO_PLAN: settings.stripe_pro_price_id,
        PREMIUM_PLAN: settings.stripe_premium_price_id,
    }


def list_plans() -> list[SubscriptionPlan]:
    """Plan catalogue with Stripe price ids filled in from settings."""
    price_ids = _price_ids()
    return [
        plan.model_copy(update={"price_id": price_ids.get(plan.id) or ""}) for plan in _PLANS
    ]


def plan_for_price(price_id: str | None) -> str:
    """Map a Stripe price id to a plan tier; unknown prices are the free tier."""
    if price_id:
        for plan, configured in _price_ids().items():
            if configured and configured == price_id:
                return plan
    return FREE_PLAN

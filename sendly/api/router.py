from __future__ import annotations

from fastapi import APIRouter, Request

from sendly.api.billing_api import router as billing_router
from sendly.api.openapi_responses import RATE_LIMITED, error_responses
from sendly.api.preferences_api import router as preferences_router
from sendly.api.schemas.meta import HealthResponse
from sendly.core.rate_limit import HEALTH_RATE_LIMIT, limit, rate_limit_ip_key

router = APIRouter()


@router.get(
    "/health",
    tags=["meta"],
    summary="Health check",
    response_model=HealthResponse,
    responses=error_responses(RATE_LIMITED),
)
@limit(HEALTH_RATE_LIMIT, key_func=rate_limit_ip_key)
def health(request: Request) -> HealthResponse:
    """Check the health of the application."""
    return HealthResponse(status="ok")


# Include sub-routers
router.include_router(preferences_router, prefix="/preferences", tags=["preferences"])
router.include_router(billing_router, prefix="/billing", tags=["billing"])

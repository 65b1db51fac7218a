from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from sendly.api.dependencies import UnitOfWork, get_current_user, get_uow
from sendly.api.openapi_responses import (
    INVALID_PREFERENCES,
    PREFERENCES_NOT_FOUND,
    RATE_LIMITED,
    UNAUTHORIZED,
    VALIDATION_ERROR,
    error_responses,
)
from sendly.api.schemas.preferences import (
    PreferencesRequest,
    PreferencesResponse,
    PreferencesSavedResponse,
    PreferencesStatusRequest,
    SendTestResponse,
)
from sendly.core.auth import CurrentUser
from sendly.core.errors import http_error_from_service_error
from sendly.core.rate_limit import (
    PREFERENCES_WRITE_RATE_LIMIT,
    TEST_SEND_RATE_LIMIT,
    limit,
    rate_limit_user_or_ip_key,
)
from sendly.services.preference_service import (
    PreferenceError,
    PreferencesNotFoundError,
)

router = APIRouter()


def _preference_http_error(exc: PreferenceError) -> HTTPException:
    if isinstance(exc, PreferencesNotFoundError):
        return http_error_from_service_error(status.HTTP_404_NOT_FOUND, exc)
    return http_error_from_service_error(status.HTTP_400_BAD_REQUEST, exc)


@router.get(
    "",
    summary="Get newsletter preferences",
    response_model=PreferencesResponse,
    responses=error_responses(UNAUTHORIZED, PREFERENCES_NOT_FOUND, RATE_LIMITED),
)
async def get_preferences(
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    uow: UnitOfWork = Depends(get_uow),
) -> PreferencesResponse:
    """Return the caller's saved preferences."""
    try:
        preference = await uow.preference_service.get_preferences(current_user.id)
    except PreferenceError as exc:
        raise _preference_http_error(exc) from exc
    return PreferencesResponse.model_validate(preference)


@router.post(
    "",
    summary="Save newsletter preferences",
    description=(
        "Create or update preferences and restart the delivery schedule. "
        "With send_now, a first newsletter is also queued immediately."
    ),
    response_model=PreferencesSavedResponse,
    responses=error_responses(INVALID_PREFERENCES, UNAUTHORIZED, VALIDATION_ERROR, RATE_LIMITED),
)
@limit(PREFERENCES_WRITE_RATE_LIMIT, key_func=rate_limit_user_or_ip_key)
async def save_preferences(
    request: Request,
    request_data: PreferencesRequest,
    current_user: CurrentUser = Depends(get_current_user),
    uow: UnitOfWork = Depends(get_uow),
) -> PreferencesSavedResponse:
    try:
        preference, schedule_ids = await uow.preference_service.save_preferences(
            current_user.id,
            request_data.categories,
            request_data.frequency,
            request_data.email,
            send_now=request_data.send_now,
        )
    except PreferenceError as exc:
        raise _preference_http_error(exc) from exc
    return PreferencesSavedResponse(
        message="Preferences saved and newsletter scheduled",
        preferences=PreferencesResponse.model_validate(preference),
        schedule_ids=schedule_ids,
    )


@router.patch(
    "",
    summary="Pause or resume the newsletter",
    description="Resuming a paused newsletter sends one shortly and restarts the regular cadence.",
    response_model=PreferencesSavedResponse,
    responses=error_responses(UNAUTHORIZED, PREFERENCES_NOT_FOUND, VALIDATION_ERROR, RATE_LIMITED),
)
@limit(PREFERENCES_WRITE_RATE_LIMIT, key_func=rate_limit_user_or_ip_key)
async def update_preferences_status(
    request: Request,
    request_data: PreferencesStatusRequest,
    current_user: CurrentUser = Depends(get_current_user),
    uow: UnitOfWork = Depends(get_uow),
) -> PreferencesSavedResponse:
    try:
        preference, schedule_ids = await uow.preference_service.set_active(
            current_user.id, request_data.is_active
        )
    except PreferenceError as exc:
        raise _preference_http_error(exc) from exc
    return PreferencesSavedResponse(
        message="Preferences updated successfully",
        preferences=PreferencesResponse.model_validate(preference),
        schedule_ids=schedule_ids,
    )


@router.post(
    "/test-send",
    summary="Send a newsletter now",
    description=(
        "Queue a one-off newsletter for the saved preferences without touching the cadence."
    ),
    response_model=SendTestResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=error_responses(
        INVALID_PREFERENCES, UNAUTHORIZED, PREFERENCES_NOT_FOUND, RATE_LIMITED
    ),
)
@limit(TEST_SEND_RATE_LIMIT, key_func=rate_limit_user_or_ip_key)
async def send_test_newsletter(
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    uow: UnitOfWork = Depends(get_uow),
) -> SendTestResponse:
    try:
        schedule_id = await uow.preference_service.send_test(current_user.id)
    except PreferenceError as exc:
        raise _preference_http_error(exc) from exc
    return SendTestResponse(message="Test newsletter queued", schedule_id=schedule_id)

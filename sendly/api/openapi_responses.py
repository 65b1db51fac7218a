from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import status

from sendly.core.errors import ErrorResponse


@dataclass(frozen=True)
class ErrorExample:
    status_code: int
    error: str
    message: str
    description: str
    summary: str | None = None
    details: Any | None = None


def error_responses(*examples: ErrorExample) -> dict[int | str, dict[str, Any]]:
    """Build a FastAPI ``responses`` mapping; examples sharing a status are merged."""
    responses: dict[int | str, dict[str, Any]] = {}
    for example in examples:
        response = responses.setdefault(
            example.status_code,
            {
                "model": ErrorResponse,
                "description": example.description,
                "content": {"application/json": {"examples": {}}},
            },
        )
        payload: dict[str, Any] = {"error": example.error, "message": example.message}
        if example.details is not None:
            payload["details"] = example.details
        response["content"]["application/json"]["examples"][example.error] = {
            "summary": example.summary or example.description,
            "value": payload,
        }
    return responses


RATE_LIMITED = ErrorExample(
    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    error="rate_limited",
    message="Too many requests",
    description="Rate limit exceeded",
)

UNAUTHORIZED = ErrorExample(
    status_code=status.HTTP_401_UNAUTHORIZED,
    error="unauthorized",
    message="Could not validate credentials",
    description="Missing or invalid token",
)

VALIDATION_ERROR = ErrorExample(
    status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
    error="validation_error",
    message="Request validation failed",
    description="Malformed request body",
    details=[{"loc": ["body", "frequency"], "msg": "Field required", "type": "missing"}],
)

INVALID_PREFERENCES = ErrorExample(
    status_code=status.HTTP_400_BAD_REQUEST,
    error="invalid_preferences",
    message="Preferences are invalid.",
    description="Preferences failed validation",
    details=[{"field": "categories", "message": "Select at least one category."}],
)

PREFERENCES_NOT_FOUND = ErrorExample(
    status_code=status.HTTP_404_NOT_FOUND,
    error="preferences_not_found",
    message="No newsletter preferences saved yet.",
    description="No preferences saved",
)

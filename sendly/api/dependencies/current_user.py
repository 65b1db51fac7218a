"""Dependency that provides the authenticated user from the request."""

from __future__ import annotations

from fastapi import Depends, status

from sendly.core.auth import CurrentUser, oauth2_scheme, user_from_payload, verify_token
from sendly.core.errors import build_http_error


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """FastAPI dependency to get the current authenticated user."""
    credentials_exception = build_http_error(
        status_code=status.HTTP_401_UNAUTHORIZED,
        error="unauthorized",
        message="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = verify_token(token)
    if payload is None:
        raise credentials_exception

    user = user_from_payload(payload)
    if user is None:
        raise credentials_exception
    return user

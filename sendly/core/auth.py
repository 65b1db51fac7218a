"""Bearer-token verification for JWTs issued by the hosted auth provider.

Sendly never issues or stores credentials itself; it only validates the signed
access token sent by the browser and trusts its ``sub`` claim as the user id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from sendly.core.config import settings

# Bearer token extractor (OAuth2PasswordBearer is FastAPI's helper for extracting
# Bearer tokens from Authorization headers; the token URL belongs to the auth provider)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/v1/token")


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str | None = None


def verify_token(token: str) -> dict[str, Any] | None:
    """Verify and decode a JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
        return payload
    except JWTError:
        return None


def user_from_payload(payload: dict[str, Any]) -> CurrentUser | None:
    """Build the request user from verified claims, or None when ``sub`` is unusable."""
    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id.strip():
        return None
    email = payload.get("email")
    return CurrentUser(id=user_id, email=email if isinstance(email, str) else None)

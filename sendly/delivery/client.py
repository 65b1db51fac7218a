from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx
from pydantic import BaseModel

from sendly.core.config import settings
from sendly.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class DeliveryReceipt(BaseModel):
    """Provider acknowledgement for one accepted message."""

    message_id: str
    provider: str
    to_email: str


class DeliveryError(Exception):
    """Base error raised when an email could not be handed to the provider."""

    def __init__(self, message: str, error_code: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code


class DeliveryRejectedError(DeliveryError):
    """Provider refused the message (bad sender, invalid recipient, auth failure)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, "delivery_rejected", status_code)


class DeliveryUnavailableError(DeliveryError):
    """Provider unreachable, timing out, rate limiting or failing server-side."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, "delivery_unavailable", status_code)


class EmailClient(ABC):
    """Abstract base class for transactional email adapters."""

    @abstractmethod
    async def send(self, to_email: str, subject: str, html_body: str) -> DeliveryReceipt:
        """Send one HTML email. Never retries; callers own retry policy."""
        raise NotImplementedError


class ResendEmailClient(EmailClient):
    """Resend REST API implementation of the delivery adapter."""

    provider = "resend"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        from_address: str | None = None,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.api_key = api_key or settings.resend_api_key
        if not self.api_key:
            raise ConfigurationError("resend_api_key", "ResendEmailClient")
        self.from_address = from_address or settings.email_from
        self._base_url = (base_url or settings.resend_api_base_url).rstrip("/")
        self._http_client = http_client
        self._timeout_seconds = timeout_seconds

    async def send(self, to_email: str, subject: str, html_body: str) -> DeliveryReceipt:
        payload = {
            "from": self.from_address,
            "to": [to_email],
            "subject": subject,
            "html": html_body,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    f"{self._base_url}/emails", json=payload, headers=headers
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                    response = await client.post(
                        f"{self._base_url}/emails", json=payload, headers=headers
                    )
        except httpx.TimeoutException as exc:
            logger.error("Email provider request timed out. Error: %s", exc)
            raise DeliveryUnavailableError("Email provider timed out.") from exc
        except httpx.HTTPError as exc:
            logger.error("Email provider unreachable. Error: %s", exc)
            raise DeliveryUnavailableError("Email provider unreachable.") from exc

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS or response.status_code >= 500:
            logger.error(
                "Email provider unavailable",
                extra={"status_code": response.status_code, "body": response.text[:500]},
            )
            raise DeliveryUnavailableError(
                f"Email provider returned {response.status_code}.", response.status_code
            )
        if response.status_code >= 400:
            logger.error(
                "Email provider rejected message",
                extra={"status_code": response.status_code, "body": response.text[:500]},
            )
            raise DeliveryRejectedError(
                f"Email provider rejected the message ({response.status_code}).",
                response.status_code,
            )

        try:
            message_id = response.json()["id"]
        except (ValueError, KeyError, TypeError) as exc:
            raise DeliveryUnavailableError(
                "Email provider returned an unexpected response."
            ) from exc

        logger.info("Email accepted by provider", extra={"message_id": message_id})
        return DeliveryReceipt(
            message_id=str(message_id), provider=self.provider, to_email=to_email
        )

"""Unit of Work: one transaction per request, session-scoped services from registry."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, cast

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from sendly.db.session import get_session_maker
from sendly.services.billing_service import BillingService
from sendly.services.preference_service import PreferenceService


class UnitOfWork:
    """Holds the request's session and exposes session-scoped services from the registry."""

    def __init__(self, session: AsyncSession, services: dict[str, Any]) -> None:
        self._session = session
        self._services = services
        self._resolved: dict[str, Any] = {}

    def _resolve(self, key: str) -> Any:
        if key not in self._resolved:
            service = self._services[key]
            self._resolved[key] = service(self._session) if callable(service) else service
        return self._resolved[key]

    @property
    def session(self) -> AsyncSession:
        return self._session

    @property
    def preference_service(self) -> PreferenceService:
        """Session-scoped preference service."""
        return cast(PreferenceService, self._resolve("preference_service"))

    @property
    def billing_service(self) -> BillingService:
        """Session-scoped billing service."""
        return cast(BillingService, self._resolve("billing_service"))


async def get_uow(request: Request) -> AsyncIterator[UnitOfWork]:
    """Per-request dependency: one session, commit on success, rollback on exception."""
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield UnitOfWork(session, request.app.state.services)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

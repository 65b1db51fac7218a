"""Pytest configuration and shared fixtures.

Settings are validated at import time, so test defaults are placed in the
environment before anything from ``sendly`` is imported. Database tests run
against ``TEST_DATABASE_URL`` when set, otherwise an in-memory SQLite database.
"""

from __future__ import annotations

import hashlib
import hmac
import os
import time
from collections.abc import AsyncIterator, Callable
from typing import Any

_TEST_ENV = {
    "POSTGRES_USER": "sendly",
    "POSTGRES_PASSWORD": "sendly",
    "POSTGRES_HOST": "localhost",
    "POSTGRES_PORT": "5432",
    "POSTGRES_DB": "sendly",
    "REDIS_HOST": "localhost",
    "REDIS_PORT": "6379",
    "REDIS_DB": "0",
    "JWT_SECRET_KEY": "Test-Secret-Key-For-Sendly-Tokens-123!",
    "NEWS_API_KEY": "test-news-key",
    "RESEND_API_KEY": "test-resend-key",
    "STRIPE_WEBHOOK_SECRET": "whsec_test_secret",
    "STRIPE_PRO_PRICE_ID": "price_pro_test",
    "STRIPE_PREMIUM_PRICE_ID": "price_premium_test",
    "RATE_LIMIT_STORAGE_URL": "memory://",
    "ENVIRONMENT": "test",
}
for _key, _value in _TEST_ENV.items():
    os.environ.setdefault(_key, _value)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI, Request  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from sendly.api.dependencies import UnitOfWork, get_uow  # noqa: E402
from sendly.core import config  # noqa: E402
from sendly.core.rate_limit import limiter  # noqa: E402
from sendly.db.base import Base  # noqa: E402
from sendly.main import create_app  # noqa: E402

test_database_url = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite://")


def _create_test_engine() -> AsyncEngine:
    if test_database_url.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory database.
        return create_async_engine(
            test_database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(test_database_url, pool_pre_ping=True)


@pytest.fixture(autouse=True)
def reset_rate_limits() -> None:
    """Rate limit counters live in process memory; start every test from zero."""
    limiter.reset()


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncIterator[AsyncEngine]:
    """Creates a fresh schema for each test and drops it afterwards."""
    engine = _create_test_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_maker() as session:
        yield session


@pytest.fixture(scope="function")
def app(session_maker: async_sessionmaker[AsyncSession]) -> FastAPI:
    """FastAPI app whose request sessions come from the test engine."""
    config.settings.environment = "test"
    fastapi_app = create_app()

    async def override_get_uow(request: Request) -> AsyncIterator[UnitOfWork]:
        async with session_maker() as session:
            try:
                yield UnitOfWork(session, request.app.state.services)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_uow] = override_get_uow
    return fastapi_app


@pytest_asyncio.fixture(scope="function")
async def http_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Mint an access token the way the hosted auth provider does."""

    def _make_token(
        user_id: str = "user-123",
        *,
        email: str | None = "reader@example.com",
        audience: str = "authenticated",
        expires_in: int = 3600,
        secret: str | None = None,
    ) -> str:
        claims: dict[str, Any] = {
            "sub": user_id,
            "aud": audience,
            "exp": int(time.time()) + expires_in,
            "role": "authenticated",
        }
        if email is not None:
            claims["email"] = email
        return jwt.encode(
            claims,
            secret or config.settings.jwt_secret_key,
            algorithm=config.settings.jwt_algorithm,
        )

    return _make_token


@pytest.fixture
def auth_headers(make_token: Callable[..., str]) -> Callable[..., dict[str, str]]:
    def _auth_headers(user_id: str = "user-123") -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _auth_headers


@pytest.fixture
def stripe_signature() -> Callable[..., str]:
    """Build a ``Stripe-Signature`` header for a raw payload."""

    def _sign(payload: str, *, secret: str | None = None, timestamp: int | None = None) -> str:
        secret = secret or config.settings.stripe_webhook_secret or ""
        signed_at = timestamp if timestamp is not None else int(time.time())
        digest = hmac.new(
            secret.encode("utf-8"), f"{signed_at}.{payload}".encode(), hashlib.sha256
        ).hexdigest()
        return f"t={signed_at},v1={digest}"

    return _sign

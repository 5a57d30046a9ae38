"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the caller identity, Redis, the payment provider and the payment verifier.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import redis.asyncio as aioredis
from fastapi import Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from grochain.config import Settings, get_settings
from grochain.domain.enums import UserRole
from grochain.domain.exceptions import AuthenticationError
from grochain.domain.principal import Principal
from grochain.domain.provider_protocol import PaymentProvider
from grochain.infrastructure.database.engine import get_async_session
from grochain.infrastructure.redis_client import get_redis
from grochain.services.payment_verifier import PaymentVerifier


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_principal(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Principal:
    """Build the caller identity from the gateway's X-User-Id / X-User-Role headers."""
    if not x_user_id or not x_user_role:
        raise AuthenticationError("X-User-Id and X-User-Role headers are required")
    try:
        role = UserRole(x_user_role.strip().lower())
    except ValueError as err:
        raise AuthenticationError(f"Unknown role '{x_user_role}'") from err
    return Principal(user_id=x_user_id.strip(), role=role)


def get_redis_client() -> aioredis.Redis:
    """Provide the Redis client."""
    return get_redis()


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_payment_provider(request: Request) -> PaymentProvider:
    """The provider client created by the lifespan."""
    return request.app.state.payment_provider


def get_payment_verifier(request: Request) -> PaymentVerifier:
    """The verifier owned by the lifespan (scheduled or not)."""
    return request.app.state.payment_verifier


"""FastAPI application entry point for the GroChain reconciliation service.

Lifecycle:
    1. Startup: logging, database (tables created in dev mode), Redis, the
       Paystack client and, when enabled, the periodic payment verifier.
    2. Running: REST API at /api/v1/* on a single Uvicorn process.
    3. Shutdown: stop the verifier, close the provider client, database and
       Redis connections.

Run with:
    uv run uvicorn grochain.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from grochain.config import get_settings
from grochain.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info("app.starting", env=settings.app_env, debug=settings.app_debug)

    # 2. Initialize database
    from grochain.infrastructure.database.engine import close_db, get_session_factory, init_db

    await init_db()

    # 3. Initialize Redis
    from grochain.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis()
    except Exception as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    # 4. Payment provider and reconciler
    from grochain.infrastructure.paystack_client import PaystackClient
    from grochain.services.payment_verifier import PaymentVerifier

    provider = PaystackClient.from_settings(settings)
    verifier = PaymentVerifier(get_session_factory(), provider, settings)
    app.state.payment_provider = provider
    app.state.payment_verifier = verifier
    if settings.reconciler_enabled:
        verifier.start()

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await verifier.stop()
    await provider.aclose()
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="GroChain Reconciliation Service",
        description=(
            "Harvest approval, marketplace listings, partner commissions and "
            "Paystack payment reconciliation."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from grochain.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from grochain.api.routes.commissions import router as commissions_router
    from grochain.api.routes.harvest_approval import router as harvest_approval_router
    from grochain.api.routes.harvests import router as harvests_router
    from grochain.api.routes.health import router as health_router
    from grochain.api.routes.listings import router as listings_router
    from grochain.api.routes.orders import router as orders_router
    from grochain.api.routes.payments import router as payments_router

    app.include_router(health_router)
    app.include_router(harvest_approval_router)
    app.include_router(harvests_router)
    app.include_router(listings_router)
    app.include_router(orders_router)
    app.include_router(payments_router)
    app.include_router(commissions_router)

    return app


# The app instance used by Uvicorn
app = create_app()

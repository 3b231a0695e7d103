"""FastAPI application entry point for the Middleman Escrow coordinator.

Lifecycle:
    1. Startup: Initialize logging, database, notifier, Redis, create tables (dev mode).
    2. Running: Serve the REST API on a single Uvicorn process.
    3. Shutdown: Dispose of the database engine and close Redis gracefully.

Tests pass their own Database and notifier to create_app(); the lifespan then
leaves those alone and only fills in what is missing.

Run with:
    uvicorn middleman_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from redis.exceptions import RedisError

from middleman_escrow.config import Settings, get_settings
from middleman_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from middleman_escrow.domain.notifier_protocol import EmailNotifier
    from middleman_escrow.infrastructure.database.engine import Database
    from middleman_escrow.infrastructure.market_data import CoinGeckoClient


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings: Settings = app.state.settings

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info("app.starting", env=settings.app_env, debug=settings.app_debug)

    # 2. Initialize database
    from middleman_escrow.infrastructure.database.engine import Database
    from middleman_escrow.infrastructure.market_data import CoinGeckoClient

    owns_database = app.state.database is None
    if owns_database:
        app.state.database = Database.from_settings(settings)
        if settings.is_development:
            await app.state.database.create_all()

    # 3. Initialize the email notifier
    if app.state.notifier is None:
        from middleman_escrow.infrastructure.email_notifier import BrevoEmailNotifier

        app.state.notifier = BrevoEmailNotifier.from_settings(settings)
        if settings.email_simulated:
            logger.warning("app.email_simulated")

    # 4. Initialize Redis
    from middleman_escrow.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis(settings)
    except (RedisError, OSError) as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    if owns_database:
        await app.state.database.dispose()
    await close_redis()
    logger.info("app.stopped")


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    notifier: EmailNotifier | None = None,
    market_data: CoinGeckoClient | None = None,
) -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Middleman Escrow",
        description=(
            "Escrow transaction coordinator for buyer/seller deals brokered "
            "by a neutral middleman."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.notifier = notifier
    if market_data is None:
        from middleman_escrow.infrastructure.market_data import CoinGeckoClient

        market_data = CoinGeckoClient.from_settings(settings)
    app.state.market_data = market_data

    # --- Middleware ---
    from middleman_escrow.api.middleware import setup_middleware

    setup_middleware(app, allowed_origins=settings.cors_allowed_origins)

    # --- REST API Routes ---
    from middleman_escrow.api.routes.health import router as health_router
    from middleman_escrow.api.routes.middleman import router as middleman_router
    from middleman_escrow.api.routes.settlement import router as settlement_router

    app.include_router(health_router)
    app.include_router(middleman_router)
    app.include_router(settlement_router)

    return app


# The app instance used by Uvicorn
app = create_app()

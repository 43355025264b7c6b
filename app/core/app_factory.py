"""Application factory for the rate limiter service.

Centralizes app construction (lifespan, middleware, handlers, routers) so
tests can build isolated apps with their own settings and counter store.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.adapters.rate_limit.base import AbstractCounterStore
from app.adapters.rate_limit.factory import create_counter_store
from app.api.routes import health_router, probe_router
from app.core.config import Settings, parse_exempt_paths, settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import build_rate_limiter, rate_limit_middleware

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Settings | None = None,
    *,
    store: AbstractCounterStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to use; defaults to the global settings.
        store: Counter store to use instead of the one selected by
            STORAGE_TYPE (mainly for tests).

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.rate_limit_settings = cfg.rate_limit
        app.state.exempt_paths = parse_exempt_paths(cfg.rate_limit.exempt_paths)
        app.state.rate_limiter = None
        app.state.counter_store = None
        if cfg.rate_limit.enabled:
            app.state.counter_store = store or create_counter_store(cfg)

        try:
            if app.state.counter_store is not None:
                await app.state.counter_store.ping()

            app.state.rate_limiter = build_rate_limiter(cfg, app.state.counter_store)
            if app.state.rate_limiter is not None:
                logger.info(
                    "rate_limit.ready",
                    extra={
                        "storage_type": type(app.state.counter_store).__name__,
                        "ip_limit": cfg.rate_limit.ip_requests,
                        "ip_window_s": cfg.rate_limit.ip_window_seconds,
                        "token_overrides": len(app.state.rate_limiter.config.token_rules),
                    },
                )

            yield
        finally:
            if app.state.counter_store is not None:
                await app.state.counter_store.close()

    app = FastAPI(
        title="Rate Limiter",
        description=(
            "Fixed-window rate limiter keyed by client IP or API token, backed "
            "by a shared Redis counter store."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Middleware: the last registered runs first, so request ids wrap the limiter
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(probe_router)
    app.include_router(health_router)

    apply_openapi_customizations(app, cfg.rate_limit)

    return app

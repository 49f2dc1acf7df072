"""FastAPI application factory for the URL shortener service.

The application does not open or close anything by itself: storage, logger
and settings are created by the caller (the lifecycle orchestrator, or a
test) and handed in, and the caller releases them.

Application Assembly
====================
::
    ┌──────────────────┐
    │ create_app(...)  │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ app.state:       │
    │ settings, logger │
    │ storage, metrics │
    │ allocator        │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ request logging  │
    │ middleware       │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ /metrics         │
    │ (instrumentator) │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ routes           │
    └──────────────────┘

How to Use
===========
**Step 1: Build dependencies**::
    logger = setup_logger(settings.APP_ENV)
    storage = await SQLStorage.connect(settings.DATABASE_URL, logger)

**Step 2: Build the app**::
    app = create_app(settings, storage, logger)

**Step 3: Serve it**::
    See shortener.lifecycle.Lifecycle.

Key Behaviours
===============
- Malformed request bodies are answered with 400, not FastAPI's default 422.
- Each app gets its own Prometheus registry, exposed at /metrics.
- /metrics is mounted before the alias route so it is never shadowed.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator

from shortener.allocator import AliasAllocator
from shortener.config import Settings
from shortener.metrics import ServiceMetrics
from shortener.middleware import RequestLoggingMiddleware
from shortener.routes import router
from shortener.storage import Storage

__all__ = ["create_app"]


def create_app(
    settings: Settings,
    storage: Storage,
    logger: logging.Logger,
    allocator: Optional[AliasAllocator] = None,
) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        description="Maps short aliases to long URLs and redirects to them",
    )

    registry = CollectorRegistry()
    metrics = ServiceMetrics(registry if settings.PROMETHEUS_ENABLED else None)

    app.state.settings = settings
    app.state.logger = logger
    app.state.storage = storage
    app.state.metrics = metrics
    app.state.allocator = allocator or AliasAllocator(
        storage,
        logger,
        length=settings.ALIAS_LENGTH,
        max_attempts=settings.ALIAS_MAX_ATTEMPTS,
        metrics=metrics,
    )

    if not settings.HTTP_USER:
        logger.warning("HTTP_USER is not set; every write request will be rejected")

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Malformed request body", extra={"path": request.url.path, "errors": len(exc.errors())})
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "invalid request"})

    app.add_middleware(RequestLoggingMiddleware, logger=logger)

    if settings.PROMETHEUS_ENABLED:
        Instrumentator(
            should_group_status_codes=True,
            should_ignore_untemplated=False,
            should_respect_env_var=False,
            registry=registry,
        ).instrument(app).expose(app, include_in_schema=False)

    app.include_router(router)
    return app

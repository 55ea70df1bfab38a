"""FastAPI application entrypoint.

Application startup order:
1. Load settings (from environment)
2. Configure structured logging
3. Build shared services (registry, rate limiter, preferences, analytics,
   LLM client, selection strategy, router) and store them on app.state
4. Register middleware (CORS, request id)
5. Include all routers

Shutdown order:
1. Close the preferences store connection
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from smart_router.analytics import AnalyticsTracker
from smart_router.api.router import api_router, public_router
from smart_router.config import Settings, get_settings
from smart_router.core.rate_limit import RateLimiter
from smart_router.errors import AllRoutesFailedError, RateLimitExceededError, ValidationError
from smart_router.llm import LLMClient
from smart_router.preferences import KeyValueStore, PreferencesManager, build_store
from smart_router.registry import build_default_registry
from smart_router.routing import SelectionStrategy, build_router
from smart_router.telemetry import RequestIdMiddleware, configure_logging

log = structlog.get_logger(__name__)


def init_app_state(
    app: FastAPI,
    settings: Settings,
    *,
    llm_client: LLMClient | None = None,
    rate_limiter: RateLimiter | None = None,
    store: KeyValueStore | None = None,
    strategy: SelectionStrategy | None = None,
) -> None:
    """Build every shared service and attach it to ``app.state``.

    Called by the lifespan; tests call it directly with fakes.
    """
    registry = build_default_registry(settings.router_model_id)
    limiter = rate_limiter or RateLimiter(
        settings.rate_limit_max_requests,
        settings.rate_limit_window_ms,
    )
    preferences = PreferencesManager(
        store or build_store(settings),
        default_priority=settings.default_priority,
    )
    analytics = AnalyticsTracker(
        settings.analytics_max_logged,
        recent_count=settings.analytics_recent_count,
        message_preview_chars=settings.analytics_message_preview_chars,
    )

    app.state.settings = settings
    app.state.registry = registry
    app.state.rate_limiter = limiter
    app.state.preferences = preferences
    app.state.analytics = analytics
    app.state.model_router = build_router(
        settings,
        registry=registry,
        rate_limiter=limiter,
        preferences=preferences,
        analytics=analytics,
        llm_client=llm_client,
        strategy=strategy,
    )
    log.debug("app.state_initialized", store=type(preferences.store).__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown."""
    settings = get_settings()

    # Configure structured logging first (before any log calls)
    configure_logging(
        json_logs=settings.is_prod,
        log_level="DEBUG" if settings.debug else "INFO",
    )

    log.info(
        "app.starting",
        environment=settings.environment,
        llm_api_base=settings.llm_api_base,
        selection_strategy=settings.selection_strategy,
        preferences_backend=settings.preferences_backend,
    )

    init_app_state(app, settings)
    log.info("app.ready", models=len(app.state.registry))

    yield

    await app.state.preferences.store.close()
    log.info("app.shutdown")


def _error(status_code: int, message: str, **extra: object) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    app = FastAPI(
        title="Smart Model Router",
        description=(
            "Routes each chat message to the best-suited free LLM backend, "
            "with rate limiting, per-user routing preferences and analytics."
        ),
        version="0.1.0",
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
        openapi_url="/openapi.json" if settings.is_dev else None,
        lifespan=lifespan,
    )

    # ------------------------------------------------------------------ #
    # Middleware (added in reverse order - last added = first executed)
    # ------------------------------------------------------------------ #

    # In dev mode, allow all origins for easier development
    cors_origins = ["*"] if settings.is_dev else settings.cors_allowed_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.is_prod,
        allow_methods=["*"],
        allow_headers=["Content-Type"],
        expose_headers=["Retry-After", "x-request-id"],
    )

    # Unique request ID for log correlation
    app.add_middleware(RequestIdMiddleware)

    # ------------------------------------------------------------------ #
    # Routers
    # ------------------------------------------------------------------ #

    app.include_router(public_router)
    app.include_router(api_router)

    # ------------------------------------------------------------------ #
    # Exception handlers
    # ------------------------------------------------------------------ #

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = first.get("msg", "Invalid request")
        log.info("app.request_invalid", path=request.url.path, errors=len(errors))
        return _error(400, f"{location}: {detail}" if location else detail)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        log.info("app.validation_failed", path=request.url.path, error=str(exc))
        return _error(400, str(exc))

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
        retry_after = request.app.state.settings.retry_after_seconds
        log.warning(
            "app.rate_limited",
            path=request.url.path,
            retry_after_ms=exc.retry_after_ms,
        )
        response = _error(
            429,
            "Rate limit exceeded. Please wait a moment before sending another message.",
            retryAfter=retry_after,
        )
        response.headers["Retry-After"] = str(retry_after)
        return response

    @app.exception_handler(AllRoutesFailedError)
    async def all_routes_failed_handler(
        request: Request, exc: AllRoutesFailedError
    ) -> JSONResponse:
        log.error("app.all_routes_failed", path=request.url.path, error=str(exc))
        return _error(503, "Service temporarily unavailable. Please try again later.")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error(
            "app.unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return _error(500, "Internal Server Error")

    return app


# Module-level app instance for uvicorn
app = create_app()

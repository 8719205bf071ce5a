"""FastAPI application — entry point, middleware, and health endpoint.

Creates the FocusFlow progression API with:
- API versioning via router prefix (/api/v1/)
- CORS middleware (origins from settings)
- Request logging middleware (raw ASGI, no body buffering)
- Global exception handlers (HTTPException, validation, catch-all)
- Health endpoint

Run with: uvicorn focusflow.main:app --reload

Tier 3 orchestration module: imports from config (Tier 2), deps (Tier 2),
schemas (Tier 1).
"""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from focusflow.config import get_settings
from focusflow.schemas import ApiError, ApiResponse

logger = logging.getLogger("focusflow")


# ---------------------------------------------------------------------------
# Request logging middleware (raw ASGI)
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware:
    """Logs method, path, status code, and duration for every request.

    Does NOT log request/response bodies, query params or client IPs:
    scores and user ids stay out of the access log.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "?")
        route = scope.get("path", "?")
        start = time.monotonic()
        status_code = 0

        async def logging_send(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
            await send(message)

        try:
            await self.app(scope, receive, logging_send)
        finally:
            elapsed = (time.monotonic() - start) * 1000
            logger.info("%s %s %d %.1fms", method, route, status_code, elapsed)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _http_exception_response(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wraps HTTPException in ApiResponse envelope.

    Details raised by deps.py and the routers are already ApiResponse
    dicts and pass through; anything else (e.g. a 404 for an unknown
    path) gets a generic HTTP_ERROR.
    """
    if isinstance(exc.detail, dict) and "ok" in exc.detail:
        return JSONResponse(status_code=exc.status_code, content=exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content=ApiResponse(
            ok=False,
            error=ApiError(code="HTTP_ERROR", message=str(exc.detail)),
        ).model_dump(),
    )


def _validation_error_response(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Wraps request validation errors in ApiResponse envelope (first error only)."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        loc = " -> ".join(str(part) for part in first.get("loc", []))
        msg = first.get("msg", "Validation error")
        detail = f"{loc}: {msg}" if loc else msg
    else:
        detail = "Request validation failed."

    return JSONResponse(
        status_code=422,
        content=ApiResponse(
            ok=False,
            error=ApiError(code="VALIDATION_ERROR", message=detail),
        ).model_dump(),
    )


def _unhandled_exception_response(request: Request, exc: Exception) -> JSONResponse:
    """Catches all unhandled exceptions and never leaks internals to the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=500,
        content=ApiResponse(
            ok=False,
            error=ApiError(
                code="INTERNAL_ERROR",
                message="An unexpected error occurred.",
            ),
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# App creation
# ---------------------------------------------------------------------------


def _init_progression() -> None:
    """Builds the store and engine singletons during app startup.

    STORAGE_BACKEND picks the store: ``file`` keeps one JSON file per
    player under DATA_DIR, ``memory`` forgets everything on restart.
    """
    from focusflow.api import deps
    from focusflow.engine.progression import ProgressionEngine
    from focusflow.hooks.database import InMemoryStore
    from focusflow.hooks.storage import LocalFileStore

    settings = get_settings()

    if settings.storage_backend == "memory":
        deps._store = InMemoryStore()
    else:
        deps._store = LocalFileStore(settings.data_dir)
    deps._states.clear()
    deps._engine = ProgressionEngine.from_settings(settings)

    logger.info(
        "Progression initialized: storage=%s, timezone=%s, test_every=%d",
        settings.storage_backend,
        settings.timezone,
        settings.test_every_levels,
    )


def create_app() -> FastAPI:
    """Creates and configures the FastAPI application."""
    settings = get_settings()

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    application = FastAPI(
        title="FocusFlow",
        description="Progression engine for attention-training challenges",
        version="0.1.0",
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestLoggingMiddleware)

    # -- Exception handlers --
    application.add_exception_handler(StarletteHTTPException, _http_exception_response)
    application.add_exception_handler(RequestValidationError, _validation_error_response)
    application.add_exception_handler(Exception, _unhandled_exception_response)

    # -- Routers --
    _register_routes(application)

    # -- Store and engine --
    _init_progression()

    return application


def _register_routes(application: FastAPI) -> None:
    """Registers all API routers on the application."""
    from fastapi import APIRouter

    v1 = APIRouter(prefix="/api/v1")

    @v1.get("/health")
    async def health() -> dict[str, Any]:
        return ApiResponse(ok=True, data={"status": "healthy"}).model_dump()

    from focusflow.api.progression import router as progression_router

    v1.include_router(progression_router, tags=["progression"])

    application.include_router(v1)


app = create_app()

"""
api/main.py -- FastAPI application entry point for Taskboard.

Run with:      python main.py serve
               uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (engine, services, role seeding, token purge task)
and shutdown (cancel purge task, dispose engine) symmetrically.

Every response uses one envelope. Success bodies are built by
api.responses.ok(); every failure, whether a TaskboardError raised by a
service, a request validation error, a rate-limit hit or an unexpected
exception, goes through the handlers below and comes out as ErrorResponse.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.container import build_services
from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.activity import router as activity_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.comments import router as comments_router
from api.routes.v1.projects import router as projects_router
from api.routes.v1.roles import router as roles_router
from api.routes.v1.tasks import router as tasks_router
from api.routes.v1.time_logs import router as time_logs_router
from api.routes.v1.users import router as users_router
from core.config import get_settings
from core.db import create_db_engine, now_iso
from core.errors import TaskboardError

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("taskboard.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval_seconds: int) -> None:
    """Delete expired refresh tokens every interval_seconds.

    Runs as a background asyncio task started in lifespan startup.
    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly. A failed purge is logged
    and retried on the next tick; expired tokens are already unusable, so a
    missed purge only delays cleanup.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            purged = app.state.services.tokens.purge_expired()
        except Exception:
            logger.exception("Refresh token purge failed")
            continue
        if purged:
            logger.info("Purged %d expired refresh tokens", purged)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the engine and services, seed roles, start the purge task.

    Startup order matters:
      1. Engine first -- every store needs it.
      2. build_services() -- creates missing tables, then seeds the built-in
         roles. Seeding is idempotent, so restarts and multiple workers are safe.
      3. Purge task last -- references app.state.services.
    """
    settings = get_settings()
    logger.info("Taskboard API starting up")
    engine = create_db_engine(settings.database_url)
    app.state.services = build_services(engine, settings)
    logger.info("Services initialized (registration %s)", "open" if settings.self_registration_enabled else "closed")
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.token_purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    engine.dispose()
    logger.info("Taskboard API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Taskboard API",
    description="Multi-tenant project management: projects, members, roles, tasks and an activity log.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=get_settings().allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(roles_router, prefix="/api/v1", tags=["Roles"])
app.include_router(projects_router, prefix="/api/v1", tags=["Projects"])
app.include_router(tasks_router, prefix="/api/v1", tags=["Tasks"])
app.include_router(comments_router, prefix="/api/v1", tags=["Comments"])
app.include_router(time_logs_router, prefix="/api/v1", tags=["Time logs"])
app.include_router(activity_router, prefix="/api/v1", tags=["Activity"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(
    request: Request,
    status_code: int,
    code: str,
    messages: list[str],
    errors: Any = None,
) -> JSONResponse:
    body = ErrorResponse(
        status_code=status_code,
        code=code,
        message=messages,
        errors=errors,
        path=request.url.path,
        timestamp=now_iso(),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(TaskboardError)
async def taskboard_error_handler(request: Request, exc: TaskboardError) -> JSONResponse:
    """Map every domain error to its HTTP status. Services pick the class;
    nothing in the route layer translates errors by hand."""
    if exc.status_code in (401, 403):
        logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.code)
    response = _error(request, exc.status_code, exc.code, [exc.message], exc.errors)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Plain def, not async: SlowAPIMiddleware calls this handler directly
    (without awaiting) when the limited route is a sync endpoint.
    """
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "?")
    response = _error(request, 429, "rate_limited", ["Too many requests."], str(exc.detail))
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with one readable message per failing field."""
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return _error(request, 422, "validation_error", messages or ["Request validation failed."])


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes (404) and wrong methods (405) still get the envelope."""
    return _error(request, exc.status_code, f"http_{exc.status_code}", [str(exc.detail)])


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    The client receives only a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(request, 500, "internal_error", ["An unexpected error occurred."])


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No auth and no rate limit.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and a database check."""
    database = "ok" if request.app.state.services.database_ok() else "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=VERSION,
        components={"app": "ok", "database": database},
    )

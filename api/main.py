"""
api/main.py -- FastAPI application entry point for NoteKeep.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. log_requests          -- one access-log line per request
  5. refresh_session       -- swaps an expired access token for a fresh one

Lifespan handles startup (error reporting, backend client, note store, view
cache, purge task) and shutdown (cancel purge task, close cache and HTTP
session) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.notes import router as notes_router
from auth.actions import SIGN_IN_PATH, encoded_redirect
from auth.tokens import ACCESS_COOKIE, REFRESH_COOKIE, access_token_expired, clear_session_cookies, set_session_cookies
from cache.store import ViewCache
from core.backend import BackendClient, BackendError
from core.config import get_settings
from core.reporting import capture_exception, init_reporting
from notes.store import NoteStore

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("notekeep.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Purge expired view-cache entries every 10 minutes.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(10 * 60)
        removed = app.state.cache.purge_expired()
        if removed:
            logger.info("Purged %d expired view-cache entries", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Error reporting first -- so failures during the rest of startup are captured.
      2. Backend client, then the note store that wraps it.
      3. View cache, then the purge task that references app.state.cache.
    """
    logger.info("NoteKeep starting up")
    init_reporting(_settings)
    app.state.backend = BackendClient(
        _settings.backend_url,
        _settings.backend_anon_key,
        timeout=_settings.request_timeout,
    )
    app.state.note_store = NoteStore(app.state.backend, table=_settings.notes_table)
    logger.info("Backend client initialized (%s)", _settings.backend_url or "unset")
    app.state.cache = ViewCache(ttl=_settings.view_cache_ttl)
    logger.info("View cache initialized (ttl=%ds)", _settings.view_cache_ttl)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.cache.close()
    app.state.backend.close()
    logger.info("NoteKeep shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="NoteKeep",
    description="Personal notes backed by a hosted auth and database service.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette wraps middleware in reverse registration order: the middleware
# added last is outermost. add_middleware() calls below are therefore
# listed innermost-first.
# ---------------------------------------------------------------------------

# Sign-out must see (and then drop) the cookies it was sent, not a refreshed pair.
_NO_REFRESH_PATHS = ("/sign-out", "/api/v1/auth/logout")


@app.middleware("http")
async def refresh_session(request: Request, call_next):
    """Refresh an expired access token using the refresh-token cookie.

    The new session is placed on request.state.session, where
    auth.dependencies.get_access_token() picks it up ahead of the stale
    cookie, and written back as cookies on the response. A refresh token the
    backend rejects is cleared so the browser stops presenting it.
    """
    refresh_token = request.cookies.get(REFRESH_COOKIE)
    access_token = request.cookies.get(ACCESS_COOKIE)
    session = None
    stale = False
    if (
        refresh_token
        and request.url.path not in _NO_REFRESH_PATHS
        and (not access_token or access_token_expired(access_token))
    ):
        try:
            session = await run_in_threadpool(request.app.state.backend.refresh_session, refresh_token)
            request.state.session = session
        except BackendError as e:
            logger.info("Session refresh failed: %s", e)
            stale = True

    response = await call_next(request)

    if session is not None:
        set_session_cookies(response, session)
    elif stale:
        clear_session_cookies(response)
    return response


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


app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=True,
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(notes_router, prefix="/api/v1", tags=["Notes"])
# Web UI router is mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# API errors share one envelope, {"error": {"code", "message", "detail"}}, so
# clients never pick a schema by status code.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """429 for API clients; browsers on the sign-in form get a redirect with a message."""
    if not request.url.path.startswith("/api/"):
        result = encoded_redirect("error", SIGN_IN_PATH, "Too many sign-in attempts. Please try again later.")
        return RedirectResponse(result.location, status_code=302)

    response = _error_response(429, "rate_limited", "Too many requests.", str(exc.detail))
    response.headers["Retry-After"] = "60"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Route handlers raise HTTPException(detail={"code": ..., "message": ...});
    a dict detail becomes the error field as-is, anything else is wrapped."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Report the failure; the raw exception never reaches the response body."""
    capture_exception(exc, "unhandled_request", method=request.method, path=request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Registered here rather than in a router so it answers even if router setup
# changes. No rate limit and no auth; load balancers poll it freely.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and whether the auth backend answers."""
    backend_ok = request.app.state.backend.health()
    return HealthResponse(
        status="healthy" if backend_ok else "degraded",
        version=__version__,
        components={"app": "ok", "backend": "ok" if backend_ok else "error"},
    )

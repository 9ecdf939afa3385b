"""
api/main.py -- FastAPI application entry point for QuizMaker.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. request_gate          -- redirects page requests per auth.gate.RequestGate
  4. log_requests          -- method/path/status/latency for every request

Lifespan builds the auth stack (engine, stores, codec, service, gate) on
app.state and starts the expired-session reaper; shutdown cancels the reaper
and disposes the engine.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import Pool
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError
from auth.gate import REDIRECT, RequestGate
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore, create_auth_engine
from auth.tokens import TokenCodec, clear_auth_cookie, get_request_token
from core.config import get_settings

APP_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("quizmaker.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background session reaper
# ---------------------------------------------------------------------------


async def _session_reaper_loop(app: FastAPI, interval: int) -> None:
    """Deactivate expired sessions every `interval` seconds.

    The store call is blocking DB I/O, so it runs in a worker thread. Expired
    sessions are already rejected lazily on access; this only keeps the
    table honest for session listings and audits. CancelledError from
    task.cancel() during shutdown propagates out of asyncio.sleep.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            count = await asyncio.to_thread(app.state.session_store.cleanup_expired)
        except SQLAlchemyError:
            logger.exception("Session cleanup failed")
            continue
        if count:
            logger.info("Session cleanup deactivated %d expired session(s)", count)


def build_auth_state(app: FastAPI, db_url: str, poolclass: type[Pool] | None = None) -> None:
    """Create the auth collaborators and attach them to app.state.

    Shared by the real lifespan and the test lifespan in tests/conftest.py.
    """
    ttl = timedelta(days=_settings.session_ttl_days)
    engine = create_auth_engine(db_url, poolclass=poolclass)
    codec = TokenCodec(_settings.secret_key, ttl=ttl)
    app.state.engine = engine
    app.state.user_store = UserStore(engine)
    app.state.session_store = SessionStore(engine, ttl=ttl)
    app.state.token_codec = codec
    app.state.auth_service = AuthService(app.state.user_store, app.state.session_store, codec)
    app.state.gate = RequestGate(
        codec,
        protected_paths=_settings.protected_paths,
        auth_paths=_settings.auth_paths,
        login_path=_settings.login_path,
        home_path=_settings.home_path,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown.
    """
    logger.info("QuizMaker API starting up")
    build_auth_state(app, _settings.database_url)
    logger.info("Auth initialized")

    app.state.reaper_task = None
    if _settings.session_cleanup_interval_seconds > 0:
        app.state.reaper_task = asyncio.create_task(
            _session_reaper_loop(app, _settings.session_cleanup_interval_seconds)
        )

    yield

    if app.state.reaper_task is not None:
        app.state.reaper_task.cancel()
    app.state.engine.dispose()
    logger.info("QuizMaker API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="QuizMaker API",
    description="Accounts and sessions for the QuizMaker teacher app.",
    version=APP_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the app, so the LAST one added is the outermost.
# @app.middleware("http") functions behave the same way. Registration order
# below is therefore innermost first.
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


@app.middleware("http")
async def request_gate(request: Request, call_next):
    """Apply the RequestGate to page requests.

    /api/ and /static/ are never gated: API handlers answer with 401 JSON
    instead of redirects. The gate only checks token signature/expiry; the
    page handler behind it re-checks session liveness.
    """
    path = request.url.path
    gate: RequestGate | None = getattr(request.app.state, "gate", None)
    if gate is None or path.startswith(("/api/", "/static/")):
        return await call_next(request)

    decision = gate.evaluate(path, get_request_token(request))
    if decision.action == REDIRECT:
        response = RedirectResponse(decision.location, status_code=302)
    else:
        response = await call_next(request)
    if decision.clear_cookie:
        clear_auth_cookie(response)
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
# Web UI router is mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render any AuthError with its own status and machine code."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 when the request body is not the expected JSON shape."""
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                details=[str(e.get("msg", "")) for e in exc.errors()],
            )
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail))
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(SQLAlchemyError)
async def datastore_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Datastore failures are logged in full and surfaced as an opaque 500."""
    logger.exception("Datastore error on %s %s", request.method, request.url.path)
    return _internal_error()


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the server log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _internal_error()


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(code="internal_error", message="An unexpected error occurred.")
        ).model_dump(exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and datastore reachability."""
    components = {"app": "ok", "database": "ok"}
    try:
        request.app.state.user_store.ping()
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        components["database"] = "error"
    return HealthResponse(version=APP_VERSION, components=components)

"""
api/main.py -- FastAPI application entry point for Tokengate.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware  -- adds CORS headers for allowed browser origins
  2. log_requests    -- one access log line per request with latency

Lifespan builds every collaborator exactly once from Settings and parks it on
app.state. Apart from the CORS origin list, nothing below reads configuration
at import time, which is what lets tests swap the lifespan for one wired to
in-memory stores.

Error rendering: every failure leaves as the same envelope,
    {"error": {"code": ..., "message": ..., "detail"?: ..., "errors"?: [...]}}
so clients parse one shape regardless of status.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError
from auth.notifier import ResetNotifier
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings, get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tokengate.api")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, settings: Settings, user_store: UserStore) -> None:
    """Build the auth collaborators from settings and attach them to app.state.

    Shared by the real lifespan and the test lifespan so both wire the app the
    same way; only the store differs.
    """
    token_service = TokenService(
        settings.jwt_secret,
        session_ttl=timedelta(days=settings.session_token_days),
        reset_ttl=timedelta(minutes=settings.reset_token_minutes),
    )
    notifier = ResetNotifier(
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        smtp_user=settings.smtp_user,
        smtp_password=settings.smtp_password,
        smtp_use_tls=settings.smtp_use_tls,
        from_email=settings.mail_from,
        from_name=settings.mail_from_name,
    )
    app.state.settings = settings
    app.state.user_store = user_store
    app.state.token_service = token_service
    app.state.auth_service = AuthService(
        user_store,
        PasswordHasher(rounds=settings.bcrypt_rounds),
        token_service,
        notifier,
        settings,
    )


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the store and auth services on startup; dispose the engine on shutdown."""
    settings = get_settings()
    logger.info("Tokengate API starting up (environment=%s)", settings.environment)
    if settings.uses_insecure_secret:
        logger.warning("Running with the INSECURE fallback JWT secret. Set JWT_SECRET.")
    wire_services(app, settings, UserStore(settings.database_url))
    logger.info("Auth initialized")

    yield

    app.state.user_store.close()
    logger.info("Tokengate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Tokengate API",
    description="Credential and session-token lifecycle service.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler; latency is measured around call_next.
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


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error_response(status_code: int, detail: ErrorDetail) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=detail).model_dump(exclude_none=True),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render domain errors from AuthService and the dependency gates."""
    return _error_response(exc.status_code, ErrorDetail(**exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 validation_failed with the field-level error list.

    jsonable_encoder is needed because Pydantic error dicts may carry the
    original exception object under "ctx".
    """
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"), "message": err.get("msg", "")}
        for err in jsonable_encoder(exc.errors())
    ]
    return _error_response(
        400,
        ErrorDetail(code="validation_failed", message="Request validation failed.", errors=errors),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions (404 route, 405, ...)."""
    return _error_response(exc.status_code, ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail)))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is logged only, never written to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, ErrorDetail(code="internal_error", message="An unexpected error occurred."))


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and whether the identity store answers."""
    try:
        database = "ok" if request.app.state.user_store.ping() else "error"
    except Exception:
        logger.exception("Health check: identity store unreachable")
        database = "error"
    return HealthResponse(version=__version__, components={"app": "ok", "database": database})

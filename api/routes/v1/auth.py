"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register         -- create account; 201 + session token
  POST /api/v1/auth/login            -- email/password login; session token
  POST /api/v1/auth/refresh          -- new session token (requires auth)
  POST /api/v1/auth/logout           -- stateless logout (requires auth)
  POST /api/v1/auth/forgot-password  -- start password reset (always 200)
  POST /api/v1/auth/reset-password   -- finish password reset with challenge token
  GET  /api/v1/auth/me               -- full current identity (requires auth)

The handlers are thin: pull AuthService off app.state, hand it the validated
request model, return its result. All business rules live in auth/service.py
and all error rendering lives in api/main.py.

Handlers are sync `def` on purpose: bcrypt is CPU-bound, and FastAPI runs
sync handlers in its thread pool instead of blocking the event loop.

Security:
  [M5] Cache-Control: no-store on every response that carries a token.
  Forgot-password mail goes out through BackgroundTasks, after the response
  is sent, so mail latency and failures cannot change the response.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response

from auth.dependencies import get_current_user
from auth.models import User
from auth.schemas import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
)
from auth.service import AuthService

# Auth policy:
# - POST /auth/register, /auth/login, /auth/forgot-password, /auth/reset-password: public
# - POST /auth/refresh, /auth/logout, GET /auth/me: bearer token (get_current_user)
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"  # [M5]


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> RegisterResponse:
    """Create an account and return a session token with the public identity view."""
    result = _service(request).register(body)
    _no_store(response)
    return result


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
    """Authenticate with email and password.

    Wrong email and wrong password produce byte-identical 400 responses.
    """
    result = _service(request).login(body)
    _no_store(response)
    return result


@router.post("/auth/forgot-password", response_model=ForgotPasswordResponse, response_model_exclude_none=True)
def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
) -> ForgotPasswordResponse:
    """Request a reset link. Always 200 with the same message."""
    return _service(request).forgot_password(body, schedule=background_tasks.add_task)


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Set a new password with a reset challenge token. Does not log the user in."""
    return _service(request).reset_password(body)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/refresh", response_model=RefreshResponse)
def refresh(request: Request, response: Response, current_user: User = Depends(get_current_user)) -> RefreshResponse:
    """Exchange a valid session token for a fresh one."""
    result = _service(request).refresh_token(current_user.id)
    _no_store(response)
    return result


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, current_user: User = Depends(get_current_user)) -> MessageResponse:
    """Stateless logout. The token is not revoked; the client must discard it."""
    return _service(request).logout(current_user)


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return the full public view of the authenticated identity."""
    return _service(request).get_current_identity(current_user.id)

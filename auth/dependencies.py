"""
auth/dependencies.py -- FastAPI Depends() gates for protected routes.

Four gates, composed in order with a route's dependencies=[...] list
(FastAPI resolves route-level dependencies left to right):

  authenticate           Bearer token -> live User, or 401.
  optional_authenticate  Same resolution; every failure means "anonymous".
  require_admin          Needs a User attached by authenticate; 403 unless admin.
  require_verified       Needs a User attached by authenticate; 403 unless verified.

Example:
    @router.get("/admin/report", dependencies=[Depends(authenticate), Depends(require_admin)])
    def report(user: User = Depends(get_current_user)): ...

authenticate attaches request.state.user and request.state.token. The role
gates read request.state.user rather than re-running authentication, so they
answer 401 "Authentication required" if they are wired without it.

401 messages are distinct on purpose so clients can tell "log in" from
"refresh": missing token, invalid token, expired token, and user gone (a
deleted account still holding a valid token). An unexpected failure (store
unreachable) is a 500 with the underlying message in detail.

Collaborators come from app.state (token_service, user_store), wired once
by the API lifespan.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Request

from auth.errors import ForbiddenError, InternalError, UnauthorizedError
from auth.models import User
from auth.tokens import TokenError, TokenExpiredError

logger = logging.getLogger("tokengate.auth")


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        return token or None
    return None


def _resolve_user(request: Request, token: str) -> User | None:
    """Verify token and load its user. Raises TokenError; returns None if the user is gone."""
    claims = request.app.state.token_service.verify_session(token)
    return request.app.state.user_store.get_by_id(claims["id"])


def authenticate(request: Request) -> User:
    """Require a valid bearer token for a user that still exists."""
    token = _bearer_token(request)
    if token is None:
        raise UnauthorizedError("No authentication token provided")

    try:
        user = _resolve_user(request, token)
    except TokenExpiredError as exc:
        raise UnauthorizedError("Token expired") from exc
    except TokenError as exc:
        raise UnauthorizedError("Invalid token") from exc
    except Exception as exc:
        logger.exception("Authentication lookup failed")
        raise InternalError("Authentication failed", detail=str(exc), code="authentication_failed") from exc

    if user is None:
        raise UnauthorizedError("User not found")

    request.state.user = user
    request.state.token = token
    return user


def optional_authenticate(request: Request) -> User | None:
    """Attach the user if the request carries a good token; otherwise continue anonymously.

    Never raises. Failures are logged at debug level only.
    """
    request.state.user = None
    token = _bearer_token(request)
    if token is None:
        return None
    try:
        user = _resolve_user(request, token)
    except Exception as exc:
        logger.debug("Optional authentication ignored: %s", exc)
        return None
    if user is None:
        return None
    request.state.user = user
    request.state.token = token
    return user


def _attached_user(request: Request) -> User:
    user = getattr(request.state, "user", None)
    if user is None:
        raise UnauthorizedError("Authentication required")
    return user


def require_admin(request: Request) -> User:
    """Gate on the admin flag. Must run after authenticate."""
    user = _attached_user(request)
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user


def require_verified(request: Request) -> User:
    """Gate on the email verification flag. Must run after authenticate."""
    user = _attached_user(request)
    if not user.is_verified:
        raise ForbiddenError("Email verification required")
    return user


def get_current_user(user: User = Depends(authenticate)) -> User:
    """Handler-facing alias: the authenticated User.

    FastAPI caches dependencies per request, so combining this with
    dependencies=[Depends(authenticate)] does not verify the token twice.
    """
    return user

"""
auth/tokens.py -- JWT construction and verification.

Security design decisions:
  JWT: python-jose with HS256. Two token kinds share the signing key but never
       the claim set:
         session (type="access")          -- id, email, username; 7 days.
         reset   (type="password_reset")  -- user_id, ver; 1 hour.
       verify_session() insists on type="access", so a reset challenge can
       never be presented as a bearer token, and the reset flow rejects any
       token whose type is not "password_reset".

  Failure kinds: verify() raises TokenExpiredError or TokenInvalidError.
       Callers report them differently ("Token expired" vs "Invalid token"),
       so they must stay distinguishable. python-jose checks the signature
       before the expiry, so TokenExpiredError implies a genuine token.

  Secret: passed in by the caller (from Settings) once at startup and never
       changed afterwards. TokenService instances are immutable.

  Nothing here is persisted. A token is valid exactly as long as its
  signature checks out and exp is in the future.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import ExpiredSignatureError, JWTError, jwt

if TYPE_CHECKING:
    from auth.models import User

_ALGORITHM = "HS256"

SESSION_TOKEN_TYPE = "access"
RESET_TOKEN_TYPE = "password_reset"


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenInvalidError(TokenError):
    """Bad signature, malformed token, or missing required claims."""


class TokenExpiredError(TokenError):
    """Signature is valid but exp has passed."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Issue and verify signed, expiring tokens.

    Usage:
        tokens = TokenService(secret, session_ttl=timedelta(days=7))
        token = tokens.issue_session(user)
        claims = tokens.verify_session(token)   # {"id": 1, "email": ..., ...}

    clock exists so tests can issue tokens "in the past"; verification always
    uses the real current time.
    """

    def __init__(
        self,
        secret: str,
        session_ttl: timedelta = timedelta(days=7),
        reset_ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret:
            raise ValueError("TokenService requires a non-empty signing secret")
        self._secret = secret
        self.session_ttl = session_ttl
        self.reset_ttl = reset_ttl
        self._clock = clock

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def _encode(self, claims: dict, ttl: timedelta) -> str:
        issued_at = self._clock()
        payload = {**claims, "iat": issued_at, "exp": issued_at + ttl}
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def issue_session(self, user: User) -> str:
        """Return a bearer token bound to the user's id, email and username."""
        return self._encode(
            {
                "sub": str(user.id),
                "id": user.id,
                "email": user.email,
                "username": user.username,
                "type": SESSION_TOKEN_TYPE,
            },
            self.session_ttl,
        )

    def issue_reset_challenge(self, user_id: int, version: int = 0) -> str:
        """Return a password-reset challenge bound to user_id and its current token version."""
        return self._encode(
            {
                "sub": str(user_id),
                "user_id": user_id,
                "type": RESET_TOKEN_TYPE,
                "ver": version,
            },
            self.reset_ttl,
        )

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, token: str) -> dict:
        """Check signature and expiry and return the claims.

        Raises TokenExpiredError or TokenInvalidError. The claim set is not
        inspected; use verify_session() for bearer tokens.
        """
        try:
            return jwt.decode(token, self._secret, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise TokenExpiredError("Token expired") from exc
        except JWTError as exc:
            raise TokenInvalidError("Invalid token") from exc

    def verify_session(self, token: str) -> dict:
        """verify() plus the bearer-token claim checks."""
        claims = self.verify(token)
        if claims.get("type") != SESSION_TOKEN_TYPE or not isinstance(claims.get("id"), int):
            raise TokenInvalidError("Invalid token")
        return claims

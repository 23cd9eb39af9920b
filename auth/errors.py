"""
auth/errors.py -- Domain error taxonomy for the auth flows and the dependency chain.

Every expected failure is an AuthError subclass carrying its HTTP status and a
stable machine-readable code. api/main.py renders them into the shared error
envelope:

    {"error": {"code": "...", "message": "...", "detail": ..., "errors": [...]}}

Anything that is NOT an AuthError is an infrastructure failure. The service
boundary logs it and converts it to InternalError, so raw exception text
never reaches a client.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class. status_code and code are overridden per subclass."""

    status_code: int = 400
    code: str = "auth_error"

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class ValidationFailedError(AuthError):
    status_code = 400
    code = "validation_failed"

    def __init__(self, errors: list[dict], message: str = "Request validation failed.") -> None:
        super().__init__(message)
        self.errors = errors

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["errors"] = self.errors
        return body


class ConflictError(AuthError):
    status_code = 400
    code = "conflict"


class InvalidCredentialsError(AuthError):
    # Deliberately identical for unknown email and wrong password.
    status_code = 400
    code = "invalid_credentials"


class NotFoundError(AuthError):
    status_code = 404
    code = "not_found"


class InvalidOrExpiredTokenError(AuthError):
    status_code = 400
    code = "invalid_or_expired_token"


class InvalidChallengeError(AuthError):
    status_code = 400
    code = "invalid_challenge"


class UnauthorizedError(AuthError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(AuthError):
    status_code = 403
    code = "forbidden"


class InternalError(AuthError):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, detail: str | None = None, code: str | None = None) -> None:
        super().__init__(message, detail)
        if code is not None:
            self.code = code

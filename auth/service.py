"""
auth/service.py -- Session flow controller: register, login, refresh, logout,
forgot-password, reset-password and current-identity.

Each public method is one business transaction against the store. None of
them holds state between calls; everything they need (store, hasher, token
service, notifier, settings) is injected once at construction.

Error contract:
  Expected outcomes are raised as AuthError subclasses (auth/errors.py) and
  pass through untouched. Every other exception is caught once at the
  operation boundary by @_operation, logged with its traceback, and re-raised
  as InternalError carrying only a generic message. No retries.

Enumeration resistance:
  login()            -- unknown email and wrong password raise the same
                        InvalidCredentialsError and cost the same bcrypt work [C1].
  forgot_password()  -- returns the same message whether or not the email
                        exists. Only the known-email path touches the notifier.

Reset challenges are single use: the token carries the identity's
token_version, and a successful reset bumps it with an optimistic compare.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import wraps
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    AuthError,
    ConflictError,
    InternalError,
    InvalidChallengeError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    NotFoundError,
)
from auth.models import Preferences, Progress, User
from auth.notifier import redact_email
from auth.schemas import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    FullIdentityView,
    IdentityView,
    IdentityWithAchievements,
    LoginIdentityView,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
)
from auth.tokens import RESET_TOKEN_TYPE, TokenError

if TYPE_CHECKING:
    from auth.notifier import ResetNotifier
    from auth.passwords import PasswordHasher
    from auth.store import UserStore
    from auth.tokens import TokenService
    from core.config import Settings

logger = logging.getLogger("tokengate.auth")

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent"
CONFLICT_MESSAGE = "User already exists with this email or username"
INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"
USER_NOT_FOUND_MESSAGE = "User not found"
INVALID_OR_EXPIRED_RESET_MESSAGE = "Invalid or expired reset token"
INVALID_RESET_MESSAGE = "Invalid reset token"

# schedule(fn, *args) runs fn(*args) now or later. The route passes
# BackgroundTasks.add_task so the email goes out after the response.
Scheduler = Callable[..., None]


def _run_now(fn: Callable, *args) -> None:
    fn(*args)


def _operation(failure_message: str):
    """Wrap a service method so unexpected errors surface as a generic InternalError."""

    def decorator(method):
        @wraps(method)
        def wrapper(self, *args, **kwargs):
            try:
                return method(self, *args, **kwargs)
            except AuthError:
                raise
            except Exception as exc:
                logger.exception("%s: %s", failure_message, exc)
                raise InternalError(failure_message) from exc

        return wrapper

    return decorator


class AuthService:
    """Orchestrates the credential and session-token flows.

    Usage:
        service = AuthService(store, hasher, tokens, notifier, settings)
        result = service.login(LoginRequest(email="a@x.com", password="secret1"))
        result.token
    """

    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        tokens: TokenService,
        notifier: ResetNotifier,
        settings: Settings,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.tokens = tokens
        self.notifier = notifier
        self.settings = settings

    # ------------------------------------------------------------------
    # Register / login
    # ------------------------------------------------------------------

    @_operation("Server error during registration")
    def register(self, body: RegisterRequest) -> RegisterResponse:
        """Create an account with default preferences and progress and return a session token.

        The conflict message never says which of email/username collided.
        """
        if self.store.find_by_email_or_username(body.email, body.username) is not None:
            raise ConflictError(CONFLICT_MESSAGE)

        user = User(
            email=body.email,
            username=body.username,
            first_name=body.first_name,
            last_name=body.last_name,
            hashed_password=self.hasher.hash(body.password),
            preferences=Preferences(),
            progress=Progress(),
            achievements=[],
        )
        try:
            user.id = self.store.create_user(user)
        except IntegrityError as exc:
            # A concurrent request registered the same email/username between
            # the pre-check and the insert [M1].
            raise ConflictError(CONFLICT_MESSAGE) from exc

        logger.info("Registered user id=%s username=%s", user.id, user.username)
        created = self.store.get_by_id(user.id) or user
        return RegisterResponse(
            message="User registered successfully",
            token=self.tokens.issue_session(created),
            user=IdentityView.from_user(created),
        )

    @_operation("Server error during login")
    def login(self, body: LoginRequest) -> LoginResponse:
        """Verify email + password, stamp last_login and return a session token.

        Unknown email and wrong password raise the identical error, and both
        paths run exactly one bcrypt verification [C1].
        """
        user = self.store.get_by_email(body.email, include_password=True)
        if user is None:
            self.hasher.verify_dummy(body.password)
            logger.info("Login failed for %s", redact_email(body.email))
            raise InvalidCredentialsError(INVALID_CREDENTIALS_MESSAGE)
        if not self.hasher.verify(body.password, user.hashed_password):
            logger.info("Login failed for %s", redact_email(body.email))
            raise InvalidCredentialsError(INVALID_CREDENTIALS_MESSAGE)

        user.last_login = self.store.update_last_login(user.id)
        user.hashed_password = None
        logger.info("Login succeeded for user id=%s", user.id)
        return LoginResponse(
            message="Login successful",
            token=self.tokens.issue_session(user),
            user=LoginIdentityView.from_user(user),
        )

    # ------------------------------------------------------------------
    # Authenticated session operations
    # ------------------------------------------------------------------

    @_operation("Server error during token refresh")
    def refresh_token(self, user_id: int) -> RefreshResponse:
        """Issue a fresh session token with the identity's current fields. No password check."""
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFoundError(USER_NOT_FOUND_MESSAGE)
        return RefreshResponse(
            token=self.tokens.issue_session(user),
            user=IdentityWithAchievements.from_user(user),
        )

    @_operation("Server error during logout")
    def logout(self, user: User | None = None) -> MessageResponse:
        """Stateless logout. Nothing is invalidated server side; the client drops its token.

        A leaked token stays valid until it expires.
        """
        if user is not None:
            logger.info("Logout for user id=%s", user.id)
        return MessageResponse(message="Logout successful")

    @_operation("Server error retrieving user information")
    def get_current_identity(self, user_id: int) -> MeResponse:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFoundError(USER_NOT_FOUND_MESSAGE)
        return MeResponse(user=FullIdentityView.from_user(user))

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def build_reset_link(self, token: str) -> str:
        base = self.settings.frontend_url.rstrip("/")
        return f"{base}/reset-password?{urlencode({'token': token})}"

    @_operation("Server error processing password reset request")
    def forgot_password(self, body: ForgotPasswordRequest, schedule: Scheduler | None = None) -> ForgotPasswordResponse:
        """Start a password reset. The response is identical for known and unknown emails.

        Outside production the raw token is also returned (and the link
        logged) so the flow can be exercised without a mail server.
        """
        user = self.store.get_by_email(body.email)
        if user is None:
            logger.info("Password reset requested for unknown address %s", redact_email(body.email))
            return ForgotPasswordResponse(message=FORGOT_PASSWORD_MESSAGE)

        reset_token = self.tokens.issue_reset_challenge(user.id, user.token_version)
        reset_link = self.build_reset_link(reset_token)
        (schedule or _run_now)(self.notifier.send_password_reset, user.email, reset_link)

        if self.settings.is_production:
            return ForgotPasswordResponse(message=FORGOT_PASSWORD_MESSAGE)
        logger.info("Password reset link for %s: %s", redact_email(user.email), reset_link)
        return ForgotPasswordResponse(message=FORGOT_PASSWORD_MESSAGE, reset_token=reset_token)

    @_operation("Server error during password reset")
    def reset_password(self, body: ResetPasswordRequest) -> MessageResponse:
        """Set a new password using a reset challenge token. The caller must log in again afterwards."""
        try:
            claims = self.tokens.verify(body.token)
        except TokenError as exc:
            raise InvalidOrExpiredTokenError(INVALID_OR_EXPIRED_RESET_MESSAGE) from exc

        if claims.get("type") != RESET_TOKEN_TYPE or not isinstance(claims.get("user_id"), int):
            raise InvalidChallengeError(INVALID_RESET_MESSAGE)

        user = self.store.get_by_id(claims["user_id"])
        if user is None:
            raise NotFoundError(USER_NOT_FOUND_MESSAGE)

        issued_version = claims.get("ver", 0)
        if issued_version != user.token_version:
            # Already consumed by an earlier reset.
            raise InvalidOrExpiredTokenError(INVALID_OR_EXPIRED_RESET_MESSAGE)

        updated = self.store.update_user(
            user.id,
            expected_token_version=issued_version,
            hashed_password=self.hasher.hash(body.password),
            token_version=issued_version + 1,
        )
        if not updated:
            # Lost a race with another reset using the same token.
            raise InvalidOrExpiredTokenError(INVALID_OR_EXPIRED_RESET_MESSAGE)

        logger.info("Password reset for user id=%s", user.id)
        return MessageResponse(message="Password reset successful")

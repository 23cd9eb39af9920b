"""
auth/schemas.py -- Request and response records for the auth flows.

These Pydantic v2 models are the typed inputs and outputs of AuthService.
Request models double as the field-level pre-check: FastAPI validates the
body against them before the service runs, so a malformed request never
reaches the store.

Wire format is camelCase (firstName, resetToken, ...) via the alias
generator; populate_by_name lets Python callers and tests use snake_case.

Identity views are layered. Each operation returns exactly the view it is
documented to return, and none of them has a field for the password hash:

  IdentityView               register
  IdentityWithAchievements   refresh
  LoginIdentityView          login (+ last_login)
  FullIdentityView           me

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Annotated, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
USERNAME_PATTERN = r"^[A-Za-z0-9]+$"

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128

_REQUEST_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)
_RESPONSE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def _normalize_email(value):
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _strip(value):
    if isinstance(value, str):
        return value.strip()
    return value


# Annotated types run the normalizer (mode=before) ahead of the length and
# pattern checks, so " Ann@X.com " validates as "ann@x.com".
_Email = Annotated[str, BeforeValidator(_normalize_email), Field(max_length=255, pattern=EMAIL_PATTERN)]
_Name = Annotated[str, BeforeValidator(_strip), Field(min_length=1, max_length=100)]
_Username = Annotated[str, BeforeValidator(_strip), Field(min_length=3, max_length=64, pattern=USERNAME_PATTERN)]
# Passwords are never stripped: surrounding spaces are part of the secret.
_NewPassword = Annotated[str, Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = _REQUEST_CONFIG

    email: _Email
    password: _NewPassword
    first_name: _Name
    last_name: _Name
    username: _Username


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = _REQUEST_CONFIG

    email: _Email
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/forgot-password."""

    model_config = _REQUEST_CONFIG

    email: _Email


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/reset-password."""

    model_config = _REQUEST_CONFIG

    token: str = Field(min_length=1, max_length=4096)
    password: _NewPassword


# ---------------------------------------------------------------------------
# Identity views
# ---------------------------------------------------------------------------


class NotificationsView(BaseModel):
    model_config = _RESPONSE_CONFIG

    email: bool
    push: bool
    achievements: bool
    reminders: bool
    weekly_progress: bool


class PreferencesView(BaseModel):
    model_config = _RESPONSE_CONFIG

    theme: str
    language: str
    preferred_programming_languages: list[str]
    learning_style: str
    difficulty: str
    notifications: NotificationsView


class ProgressView(BaseModel):
    model_config = _RESPONSE_CONFIG

    total_xp: int
    level: int
    current_streak: int
    longest_streak: int
    completed_challenges: int
    completed_projects: int
    language_progress: list[dict]
    skill_progress: list[dict]


class IdentityView(BaseModel):
    """Public view of an identity returned by register."""

    model_config = _RESPONSE_CONFIG

    id: int
    email: str
    username: str
    first_name: str
    last_name: str
    preferences: PreferencesView
    progress: ProgressView

    @classmethod
    def from_user(cls, user: User):
        """Build this view (or a subclass's) from a User.

        Factory Method: the full field map lives here once and each subclass
        keeps only the fields it declares.
        """
        data = {
            "id": user.id,
            "email": user.email,
            "username": user.username,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "preferences": asdict(user.preferences),
            "progress": asdict(user.progress),
            "achievements": list(user.achievements),
            "last_login": user.last_login,
            "profile_image": user.profile_image,
            "is_admin": user.is_admin,
            "is_verified": user.is_verified,
            "created_at": user.created_at,
            "updated_at": user.updated_at,
        }
        return cls(**{name: value for name, value in data.items() if name in cls.model_fields})


class IdentityWithAchievements(IdentityView):
    """Returned by refresh."""

    achievements: list[dict] = Field(default_factory=list)


class LoginIdentityView(IdentityWithAchievements):
    """Returned by login."""

    last_login: Optional[str] = None


class FullIdentityView(LoginIdentityView):
    """Returned by GET /auth/me."""

    profile_image: Optional[str] = None
    is_admin: bool = False
    is_verified: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    message: str


class RegisterResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    message: str
    token: str
    user: IdentityView


class LoginResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    message: str
    token: str
    user: LoginIdentityView


class RefreshResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    token: str
    user: IdentityWithAchievements


class ForgotPasswordResponse(BaseModel):
    """reset_token is only populated outside production. Routes drop it when None."""

    model_config = _RESPONSE_CONFIG

    message: str
    reset_token: Optional[str] = None


class MeResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    user: FullIdentityView

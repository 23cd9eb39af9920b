"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, the service and the routes do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class NotificationSettings:
    email: bool = True
    push: bool = True
    achievements: bool = True
    reminders: bool = True
    weekly_progress: bool = True


@dataclass
class Preferences:
    """Per-user UI and learning preferences. Defaults are what a new account gets."""

    theme: str = "system"
    language: str = "en"
    preferred_programming_languages: list[str] = field(default_factory=list)
    learning_style: str = "mixed"
    difficulty: str = "beginner"
    notifications: NotificationSettings = field(default_factory=NotificationSettings)


@dataclass
class Progress:
    """Learning progress totals. A new account starts at level 1 with nothing completed."""

    total_xp: int = 0
    level: int = 1
    current_streak: int = 0
    longest_streak: int = 0
    completed_challenges: int = 0
    completed_projects: int = 0
    language_progress: list[dict] = field(default_factory=list)
    skill_progress: list[dict] = field(default_factory=list)


@dataclass
class User:
    """Represents one account (an Identity) in Tokengate.

    hashed_password is None whenever the record was loaded without it. Only
    UserStore.get_by_email(..., include_password=True) fills it in, and only
    the login flow asks for that.

    token_version increases by one on every password reset. Reset challenge
    tokens carry the version they were issued against, so a consumed token
    no longer matches.
    """

    email: str
    username: str
    first_name: str
    last_name: str
    id: int | None = None
    hashed_password: str | None = None
    profile_image: str | None = None
    is_admin: bool = False
    is_verified: bool = False
    preferences: Preferences = field(default_factory=Preferences)
    progress: Progress = field(default_factory=Progress)
    achievements: list[dict] = field(default_factory=list)
    token_version: int = 0
    last_login: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

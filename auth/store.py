"""
auth/store.py -- SQLAlchemy Core persistence layer for identities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper.
Service and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  The password hash is only ever loaded by get_by_email(include_password=True),
  which is what the login flow uses. Every other lookup maps it to None so a
  User that reaches a response model cannot carry it.

  UNIQUE(email) and UNIQUE(username) are enforced in SQL. The service also
  does a combined pre-check so the common case gets a clean error; the
  constraint catches the concurrent-insert race [M1].

Optimistic updates:
  update_user(..., expected_token_version=n) only writes when the row still
  has token_version == n. The password reset flow uses this so two requests
  racing with the same reset token cannot both succeed.

Preferences, progress and achievements are stored as JSON text blobs.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, or_
from sqlalchemy.engine import Engine

from auth.models import NotificationSettings, Preferences, Progress, User

_DEFAULT_DB_URL = "sqlite:///./tokengate_auth.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("username", String(64), nullable=False, unique=True),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("profile_image", Text),
    Column("is_admin", Integer, nullable=False, server_default="0"),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("preferences", Text, nullable=False),  # JSON blob
    Column("progress", Text, nullable=False),  # JSON blob
    Column("achievements", Text, nullable=False, server_default="[]"),  # JSON list
    Column("token_version", Integer, nullable=False, server_default="0"),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns update_user() accepts. Anything else is a programming error.
_UPDATABLE = {
    "hashed_password",
    "first_name",
    "last_name",
    "profile_image",
    "is_admin",
    "is_verified",
    "preferences",
    "progress",
    "achievements",
    "token_version",
    "last_login",
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_db(name: str, value):
    if name in ("is_admin", "is_verified"):
        return 1 if value else 0
    if name in ("preferences", "progress"):
        return json.dumps(asdict(value))
    if name == "achievements":
        return json.dumps(value)
    return value


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User (Identity) records.

    Usage:
        store = UserStore("sqlite:///./tokengate_auth.db")
        uid = store.create_user(User(email="a@x.com", username="ann", ...))
        user = store.get_by_id(uid)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_email_or_username(self, email: str, username: str) -> User | None:
        """Return any user whose email OR username matches. Used for the register conflict check."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(or_(_users.c.email == email, _users.c.username == username)).limit(1)
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str, include_password: bool = False) -> User | None:
        """Look up a user by exact email. The hash is only loaded when include_password is True."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row, include_password=include_password) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Never includes the password hash."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email or username already
        exists. The service maps that to the same conflict error as its
        pre-check [M1].
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    username=user.username,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    hashed_password=user.hashed_password,
                    profile_image=user.profile_image,
                    is_admin=_to_db("is_admin", user.is_admin),
                    is_verified=_to_db("is_verified", user.is_verified),
                    preferences=_to_db("preferences", user.preferences),
                    progress=_to_db("progress", user.progress),
                    achievements=_to_db("achievements", user.achievements),
                    token_version=user.token_version,
                    last_login=user.last_login,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_user(self, user_id: int, expected_token_version: int | None = None, **fields) -> bool:
        """Write the given fields and stamp updated_at.

        When expected_token_version is given the update only applies if the
        stored token_version still equals it.

        Returns True if a row was updated, False if user_id was not found or
        the version check failed. Unknown field names raise ValueError.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        values = {name: _to_db(name, value) for name, value in fields.items()}
        values["updated_at"] = _now_iso()
        condition = _users.c.id == user_id
        if expected_token_version is not None:
            condition = condition & (_users.c.token_version == expected_token_version)
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(condition).values(**values))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> str:
        """Stamp the current UTC timestamp as last_login and return it."""
        stamp = _now_iso()
        self.update_user(user_id, last_login=stamp)
        return stamp

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Tokens already issued to the user stay cryptographically valid until
        they expire; the dependency chain rejects them because the lookup fails.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(_users.select().limit(1)).fetchall()
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _preferences_from_json(raw: str | None) -> Preferences:
    data = json.loads(raw) if raw else {}
    notifications = NotificationSettings(**data.pop("notifications", {}))
    return Preferences(notifications=notifications, **data)


def _progress_from_json(raw: str | None) -> Progress:
    return Progress(**json.loads(raw)) if raw else Progress()


def _row_to_user(row, include_password: bool = False) -> User:
    return User(
        id=row.id,
        email=row.email,
        username=row.username,
        first_name=row.first_name,
        last_name=row.last_name,
        hashed_password=row.hashed_password if include_password else None,
        profile_image=row.profile_image,
        is_admin=bool(row.is_admin),
        is_verified=bool(row.is_verified),
        preferences=_preferences_from_json(row.preferences),
        progress=_progress_from_json(row.progress),
        achievements=json.loads(row.achievements or "[]"),
        token_version=row.token_version,
        last_login=row.last_login,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )

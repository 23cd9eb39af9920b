"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Tokengate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The API
      lifespan reads it once and hands the values to TokenService,
      PasswordHasher and the rest explicitly.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs the JWT_SECRET fallback policy after
      all fields are resolved from the environment.

Security notes:
  [S1] A missing JWT_SECRET does not stop the service. It falls back to
       INSECURE_FALLBACK_SECRET, which is public (it is in this file) and
       therefore lets anyone forge tokens. A WARNING is logged in development
       and an ERROR in production. Never run production without JWT_SECRET.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tokengate.config")

# Documented development-only fallback [S1]. Tokens signed with this key are
# forgeable by anyone who has read the source.
INSECURE_FALLBACK_SECRET = "tokengate-insecure-development-secret-do-not-deploy"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    # "production" disables diagnostic output such as the raw reset token.
    environment: str = "development"
    database_url: str = "sqlite:///./tokengate_auth.db"
    cors_origins: list[str] = ["http://localhost:3000"]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured"; the validator below
    # swaps in the fallback so callers never see "".
    jwt_secret: str = ""
    session_token_days: int = 7
    reset_token_minutes: int = 60

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    # 12 rounds puts a verification in the tens-of-milliseconds range on
    # commodity hardware. Tests drop this to 4.
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Password reset email
    # ------------------------------------------------------------------

    frontend_url: str = "http://localhost:3000"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    mail_from: str = ""
    mail_from_name: str = "Tokengate"

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def uses_insecure_secret(self) -> bool:
        return self.jwt_secret == INSECURE_FALLBACK_SECRET

    @model_validator(mode="after")
    def apply_secret_fallback(self) -> "Settings":
        """Fall back to the insecure development secret when JWT_SECRET is unset [S1].

        The service keeps running either way; the log level is what changes.
        """
        if not self.jwt_secret:
            self.jwt_secret = INSECURE_FALLBACK_SECRET
            if self.is_production:
                logger.error(
                    "JWT_SECRET is not set in production. Falling back to the INSECURE "
                    "built-in secret -- every token issued by this process is forgeable."
                )
            else:
                logger.warning(
                    "WARNING: JWT_SECRET is not set. Using the insecure development "
                    "fallback secret. Do not deploy this configuration."
                )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()

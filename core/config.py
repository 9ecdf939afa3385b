"""
core/config.py -- QuizMaker settings, read once from the environment.

Every knob the auth core and the HTTP layer need lives on Settings: the
token signing secret, the datastore URL, cookie flags, session lifetime,
bcrypt cost and the request gate path lists. Nothing else in the codebase
reads os.environ; modules call get_settings() instead.

get_settings() is lru_cached, so Settings() is built on first use and shared
after that. pydantic-settings maps each field to an upper-cased env var
(session_ttl_days -> SESSION_TTL_DAYS) and also reads a local .env file.
List fields such as PROTECTED_PATHS and ALLOWED_HOSTS take JSON arrays.

SECRET_KEY policy (enforced by the after-validator):
  - missing with DEBUG=true: a random key is generated and a warning logged;
    every token dies with the process.
  - missing otherwise: startup fails.
  - shorter than 32 characters: startup fails. HS256 is only as strong as
    its key.
Rotating SECRET_KEY signs everybody out; sessions in the database are left
as they are and simply become unreachable.

Layer rule: core/ may not import from api/, web/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("quizmaker.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'quizmaker_auth.db'}"


class Settings(BaseSettings):
    """QuizMaker configuration.

    Every field has a default, so tests only set the few env vars they care
    about (DEBUG, BCRYPT_ROUNDS, ...) before the first get_settings() call.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Datastore
    # ------------------------------------------------------------------

    # Local SQLite file by default. Point this at a managed database URL in
    # production; nothing else changes.
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    auth_cookie_name: str = "auth_token"
    session_ttl_days: int = 7
    bcrypt_rounds: int = 12
    # 0 disables the background reaper (expired sessions are still rejected
    # lazily on access).
    session_cleanup_interval_seconds: int = 3600

    # ------------------------------------------------------------------
    # Request gate
    # ------------------------------------------------------------------

    protected_paths: list[str] = ["/dashboard", "/mcqs"]
    auth_paths: list[str] = ["/login", "/signup"]
    login_path: str = "/login"
    home_path: str = "/dashboard"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def check_secrets_and_cost(self) -> "Settings":
        """Apply the SECRET_KEY policy and bound the bcrypt work factor."""
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Logins will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()

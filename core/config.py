"""
core/config.py -- NoteKeep settings, read once from the environment and .env.

get_settings() is the only way in: it builds Settings on first call and
caches it (lru_cache), so tests must export their variables before the first
app import. Field names map to upper-case variables (backend_url ->
BACKEND_URL) with pydantic doing the type coercion.

validate_backend() runs after every field is loaded. Without DEBUG=true a
missing BACKEND_URL or BACKEND_ANON_KEY stops startup; with it, only a warning
is logged so the app can run against a fake backend.

Layer rule: imports nothing from the rest of the project.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("notekeep.config")


class Settings(BaseSettings):
    """Every field has a default; only the backend pair is enforced, by validate_backend()."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Public origin used to build email links (sign-up confirmation, password
    # reset). Empty means "derive from the request".
    site_url: str = ""
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]

    # ------------------------------------------------------------------
    # Hosted auth / database backend
    # ------------------------------------------------------------------

    backend_url: str = ""
    backend_anon_key: str = ""
    # Optional. When set, access tokens are verified locally instead of with
    # a round trip to /auth/v1/user on every request.
    backend_jwt_secret: str = ""
    notes_table: str = "notes"
    request_timeout: float = 10.0

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    refresh_cookie_max_age: int = 60 * 60 * 24 * 30

    # ------------------------------------------------------------------
    # Rate limiting / caching
    # ------------------------------------------------------------------

    sign_in_rate_limit: str = "10/minute"
    view_cache_ttl: int = 300

    # ------------------------------------------------------------------
    # Error reporting (optional -- empty DSN disables Sentry)
    # ------------------------------------------------------------------

    sentry_dsn: str = ""
    sentry_environment: str = "production"
    sentry_traces_sample_rate: float = 0.0

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_backend(self) -> "Settings":
        """Require backend credentials outside of dev mode.

        Dev mode (DEBUG=true): a missing backend only logs a warning so the
            app and the test suite can start against a fake backend.

        Production mode: refuse to start. Every page depends on the backend,
            so a missing URL would turn every request into a 500.
        """
        self.backend_url = self.backend_url.rstrip("/")
        if not self.backend_url or not self.backend_anon_key:
            if self.debug:
                logger.warning("WARNING: BACKEND_URL / BACKEND_ANON_KEY not set. Remote calls will fail.")
            else:
                raise ValueError(
                    "BACKEND_URL and BACKEND_ANON_KEY are required in production mode. "
                    "Set them in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings (cache_clear() to re-read the environment)."""
    return Settings()

"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount as middleware), api/routes/v1/auth.py and
web/routes.py (to apply sign-in limits with @limiter.limit()).

Limits are counted per client address and per route in one in-memory store.
SIGN_IN_RATE_LIMIT sets the budget for both sign-in endpoints.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def sign_in_limit() -> str:
    """SIGN_IN_RATE_LIMIT, read per request so a changed setting applies without re-import."""
    return get_settings().sign_in_rate_limit

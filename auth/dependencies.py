"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The access token is looked up in priority order:
  1. request.state.session -- set by the refresh middleware when it just
     exchanged an expired token for a new one on this request.
  2. "access_token" cookie -- set by the web UI sign-in flow.
  3. Authorization: Bearer <token> header -- API clients.

The token is then verified locally (BACKEND_JWT_SECRET configured) or by
asking the auth backend who it belongs to. The resolved user is memoised on
request.state so a page that checks auth twice costs one verification.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from web/, notes/, or cache/.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.models import AuthUser
from auth.tokens import ACCESS_COOKIE, decode_access_token
from core.backend import BackendError
from core.config import get_settings

logger = logging.getLogger("notekeep.auth")

_UNSET = object()


def get_access_token(request: Request) -> str | None:
    """Return the raw access token carried by the request, or None."""
    session = getattr(request.state, "session", None)
    if session is not None:
        return session.access_token

    token: str | None = request.cookies.get(ACCESS_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def _resolve_user(request: Request, token: str) -> AuthUser | None:
    if get_settings().backend_jwt_secret:
        claims = decode_access_token(token)
        return AuthUser.from_claims(claims) if claims else None

    try:
        return request.app.state.backend.get_user(token)
    except BackendError as e:
        # 401/403 just mean the token is stale or forged; anything else is worth a log line.
        if e.status not in (401, 403):
            logger.warning("Remote token verification failed: %s", e)
        return None


def try_get_current_user(request: Request) -> AuthUser | None:
    """Attempt to authenticate the request. Returns the user or None.

    Never raises -- callers that need a hard 401 should use get_current_user().
    """
    cached = getattr(request.state, "user", _UNSET)
    if cached is not _UNSET:
        return cached

    token = get_access_token(request)
    user = _resolve_user(request, token) if token else None
    request.state.user = user
    return user


def get_current_user(request: Request) -> AuthUser:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: AuthUser = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user

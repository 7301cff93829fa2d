"""
auth/tokens.py -- Access-token verification, session cookies, and PKCE helpers.

Security design decisions:
  JWT: tokens are issued by the hosted auth backend, never by NoteKeep. When
       BACKEND_JWT_SECRET is configured they are verified locally with
       python-jose (HS256, audience "authenticated"), saving a backend round
       trip per request. Verification returns None on any failure -- the
       dependency layer then falls back to asking the backend, or treats the
       request as unauthenticated.

  Cookies: access and refresh tokens live in httpOnly cookies so page
       scripts cannot read them. The refresh cookie outlives the access
       cookie; the refresh middleware in api/main.py uses it to mint a new
       session once the access token expires.

  PKCE: sign-up and password-reset emails carry a one-time code. The
       verifier for that code is generated here, kept in a short-lived
       httpOnly cookie, and presented back to the backend in /auth/callback.
       Only the browser that started the flow can complete it.

Layer rule: no imports from api/, web/, notes/, or cache/. Import from core/
is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
import time
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import AuthSession

logger = logging.getLogger("notekeep.auth")

_settings = get_settings()

_ALGORITHM = "HS256"
_AUDIENCE = "authenticated"

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
PKCE_COOKIE = "pkce_verifier"

# Email links are typically valid for an hour; the verifier need not outlive them.
_PKCE_MAX_AGE = 60 * 60

# Refresh a little early so a token never expires mid-request.
_EXPIRY_LEEWAY_SECONDS = 30


# ---------------------------------------------------------------------------
# JWT decode
# ---------------------------------------------------------------------------


def decode_access_token(token: str) -> dict | None:
    """Verify a backend-issued JWT. Returns the claims dict or None on any failure.

    Returns None without trying when BACKEND_JWT_SECRET is not configured;
    the caller then verifies the token remotely.
    """
    if not _settings.backend_jwt_secret:
        return None
    try:
        claims = jwt.decode(
            token,
            _settings.backend_jwt_secret,
            algorithms=[_ALGORITHM],
            audience=_AUDIENCE,
        )
    except JWTError:
        return None
    if "sub" not in claims:
        return None
    return claims


def access_token_expired(token: str) -> bool:
    """Return True if token is expired (or about to be) or cannot be parsed.

    Reads the exp claim without verifying the signature. This only decides
    whether to refresh; it is never used to authenticate anyone.
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return True
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return True
    return exp - _EXPIRY_LEEWAY_SECONDS <= time.time()


# ---------------------------------------------------------------------------
# PKCE
# ---------------------------------------------------------------------------


def generate_code_verifier() -> str:
    """Return a random 64-character URL-safe PKCE verifier (RFC 7636, 43-128 chars)."""
    return secrets.token_urlsafe(48)


def code_challenge(verifier: str) -> str:
    """Return the S256 challenge for verifier: BASE64URL(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookies(response, session: AuthSession) -> None:
    """Write the session's tokens as httpOnly cookies on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": cookie sent on same-site navigations and GET cross-site
        links, but not on cross-site POST -- CSRF mitigation for most cases.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    """
    response.set_cookie(
        ACCESS_COOKIE,
        value=session.access_token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=session.expires_in,
    )
    if session.refresh_token:
        response.set_cookie(
            REFRESH_COOKIE,
            value=session.refresh_token,
            httponly=True,
            samesite="lax",
            secure=_settings.secure_cookies,
            max_age=_settings.refresh_cookie_max_age,
        )


def clear_session_cookies(response) -> None:
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)


def set_pkce_cookie(response, verifier: str) -> None:
    response.set_cookie(
        PKCE_COOKIE,
        value=verifier,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=_PKCE_MAX_AGE,
    )

"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/login    -- password sign-in; sets session cookies, returns tokens
  POST /api/v1/auth/logout   -- ends the backend session; clears cookies
  GET  /api/v1/auth/me       -- current user info (requires auth)

Sign-up and password reset are browser flows (email links land on
/auth/callback) and live in web/routes.py only.

Security:
  POST /login is rate-limited per IP (SIGN_IN_RATE_LIMIT, default 10/minute).
  Cache-Control: no-store on login responses -- they carry tokens.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, sign_in_limit
from api.models import LoginRequest, LoginResponse, MeResponse
from auth.dependencies import get_access_token, get_current_user
from auth.models import AuthUser
from auth.tokens import clear_session_cookies, set_session_cookies
from core.backend import BackendClient, BackendError
from core.reporting import capture_exception

logger = logging.getLogger("notekeep.api.auth")

# Auth policy:
# - POST /api/v1/auth/login:   public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:  public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:      requires auth (get_current_user)
router = APIRouter()


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(sign_in_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Sign in with email and password; set session cookies and return the tokens.

    The backend's own message is passed through on 4xx ("Invalid login
    credentials", "Email not confirmed"); it never reveals which half was wrong.
    """
    backend: BackendClient = request.app.state.backend
    try:
        session = backend.sign_in_with_password(body.email, body.password)
    except BackendError as e:
        if e.status is None or e.status >= 500:
            capture_exception(e, "api_login")
            status, code = 502, "backend_error"
        else:
            status, code = 401, "bad_credentials"
        resp = JSONResponse(status_code=status, content={"error": {"code": code, "message": e.message}})
        resp.headers["Cache-Control"] = "no-store"
        return resp

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            token_type="bearer",  # noqa: S106 -- OAuth token type, not a password
            expires_in=session.expires_in,
            user_id=session.user.id,
            email=session.user.email,
        ).model_dump(),
    )
    set_session_cookies(resp, session)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """End the backend session (best effort) and clear the session cookies."""
    token = get_access_token(request)
    if token:
        try:
            request.app.state.backend.sign_out(token)
        except BackendError as e:
            capture_exception(e, "api_logout")
    resp = JSONResponse(content={"message": "Logged out."})
    clear_session_cookies(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: AuthUser = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(user_id=current_user.id, email=current_user.email)

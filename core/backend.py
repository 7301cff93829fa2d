"""
core/backend.py -- Client for the hosted auth-and-database backend.

NoteKeep keeps no users or notes of its own. Every identity operation goes to
a GoTrue-compatible auth API under /auth/v1/ and every row operation goes to
a PostgREST-compatible API under /rest/v1/. A hosted Supabase project exposes
both behind one base URL and one anon key.

Error contract:
  Every method raises BackendError on failure -- HTTP 4xx/5xx responses and
  network errors alike. Callers branch on the exception and decide what the
  user sees. Nothing here retries; a failed call is reported once.

Auth headers:
  apikey         -- always the project's anon key.
  Authorization  -- the signed-in user's access token when the call acts on
                    behalf of a user (row access, sign-out, user update), the
                    anon key otherwise. Row-level security on the backend
                    relies on this header to scope queries.

Layer rule: core/ is the kernel. Imports auth.models only for the data
containers returned from auth calls.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from auth.models import AuthSession, AuthUser

logger = logging.getLogger("notekeep.backend")


class BackendError(Exception):
    """A failed call to the auth or database backend.

    message -- human-readable text from the backend, safe to show users
               (the backend phrases it for end users, e.g. "Invalid login credentials").
    code    -- machine code from the backend ("invalid_credentials", "23505", ...)
               or "network_error" when no response arrived.
    status  -- HTTP status, None for network errors.
    """

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status

    def __str__(self) -> str:
        if self.code:
            return f"{self.code} {self.message}"
        return self.message


def _error_from_response(resp: requests.Response) -> BackendError:
    """Map an error response from either API onto BackendError.

    GoTrue answers {"code": 400, "error_code": "...", "msg": "..."} or the older
    OAuth-style {"error": "...", "error_description": "..."}. PostgREST answers
    {"code": "...", "message": "...", "details": ..., "hint": ...}.
    """
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = (
        body.get("msg")
        or body.get("message")
        or body.get("error_description")
        or body.get("error")
        or resp.reason
        or f"HTTP {resp.status_code}"
    )
    code = body.get("error_code") or body.get("code") or body.get("error")
    return BackendError(str(message), code=str(code) if code is not None else None, status=resp.status_code)


class BackendClient:
    """Thin request wrapper for one backend project.

    Usage:
        backend = BackendClient("https://xyz.supabase.co", anon_key)
        session = backend.sign_in_with_password("a@example.com", "secret")
        rows = backend.select("notes", session.access_token, {"user_id": session.user.id})
        backend.close()
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        # One pooled session per client. max_redirects=3: these are fixed API
        # endpoints, a longer redirect chain means something is wrong.
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self, access_token: Optional[str] = None, prefer: Optional[str] = None) -> dict[str, str]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token or self.anon_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        path: str,
        access_token: Optional[str] = None,
        params: Optional[dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        """Send one request and return the decoded JSON body (None when empty)."""
        url = f"{self.url}{path}"
        try:
            resp = self._session.request(
                method,
                url,
                headers=self._headers(access_token, prefer),
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Backend %s %s failed: %s", method, path, e)
            raise BackendError("Could not reach the backend service.", code="network_error") from e

        if resp.status_code >= 400:
            raise _error_from_response(resp)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise BackendError("Malformed response from the backend service.", status=resp.status_code) from e

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def sign_up(
        self,
        email: str,
        password: str,
        redirect_to: Optional[str] = None,
        code_challenge: Optional[str] = None,
    ) -> Optional[AuthUser]:
        """Register a new identity. The backend emails a confirmation link.

        Returns the created user, or None when the backend hides whether the
        address was already registered (it answers with an empty user).
        """
        body: dict[str, Any] = {"email": email, "password": password}
        if code_challenge:
            body["code_challenge"] = code_challenge
            body["code_challenge_method"] = "s256"
        params = {"redirect_to": redirect_to} if redirect_to else None
        data = self._request("POST", "/auth/v1/signup", params=params, json=body) or {}
        # Auto-confirm projects answer with a full session; others with the bare user.
        user = data.get("user", data)
        if not user.get("id"):
            return None
        return AuthUser.from_payload(user)

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        data = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return AuthSession.from_payload(data)

    def refresh_session(self, refresh_token: str) -> AuthSession:
        data = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return AuthSession.from_payload(data)

    def exchange_code_for_session(self, auth_code: str, code_verifier: str) -> AuthSession:
        """Complete a PKCE flow started by sign_up or reset_password_for_email."""
        data = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "pkce"},
            json={"auth_code": auth_code, "code_verifier": code_verifier},
        )
        return AuthSession.from_payload(data)

    def verify_otp(self, token_hash: str, otp_type: str) -> AuthSession:
        """Verify an email link that carries token_hash instead of a PKCE code."""
        data = self._request("POST", "/auth/v1/verify", json={"type": otp_type, "token_hash": token_hash})
        return AuthSession.from_payload(data)

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/auth/v1/logout", access_token=access_token)

    def reset_password_for_email(
        self,
        email: str,
        redirect_to: Optional[str] = None,
        code_challenge: Optional[str] = None,
    ) -> None:
        body: dict[str, Any] = {"email": email}
        if code_challenge:
            body["code_challenge"] = code_challenge
            body["code_challenge_method"] = "s256"
        params = {"redirect_to": redirect_to} if redirect_to else None
        self._request("POST", "/auth/v1/recover", params=params, json=body)

    def update_user(self, access_token: str, password: str) -> AuthUser:
        data = self._request("PUT", "/auth/v1/user", access_token=access_token, json={"password": password})
        return AuthUser.from_payload(data)

    def get_user(self, access_token: str) -> AuthUser:
        data = self._request("GET", "/auth/v1/user", access_token=access_token)
        return AuthUser.from_payload(data)

    def health(self) -> bool:
        """Return True if the auth API answers its health probe."""
        try:
            self._request("GET", "/auth/v1/health")
        except BackendError:
            return False
        return True

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    @staticmethod
    def _filter_params(filters: Optional[dict[str, Any]]) -> dict[str, str]:
        return {column: f"eq.{value}" for column, value in (filters or {}).items()}

    def select(
        self,
        table: str,
        access_token: str,
        filters: Optional[dict[str, Any]] = None,
        order: Optional[str] = None,
    ) -> list[dict]:
        """Return rows of table matching every equality filter.

        order uses PostgREST syntax, e.g. "created_at.desc".
        """
        params = {"select": "*", **self._filter_params(filters)}
        if order:
            params["order"] = order
        return self._request("GET", f"/rest/v1/{table}", access_token=access_token, params=params) or []

    def insert(self, table: str, access_token: str, row: dict[str, Any]) -> list[dict]:
        return (
            self._request(
                "POST",
                f"/rest/v1/{table}",
                access_token=access_token,
                json=row,
                prefer="return=representation",
            )
            or []
        )

    def update(
        self,
        table: str,
        access_token: str,
        values: dict[str, Any],
        filters: dict[str, Any],
    ) -> list[dict]:
        """Update matching rows. filters must be non-empty -- an unfiltered
        PATCH would rewrite the whole table."""
        if not filters:
            raise ValueError("update() requires at least one filter")
        return (
            self._request(
                "PATCH",
                f"/rest/v1/{table}",
                access_token=access_token,
                params=self._filter_params(filters),
                json=values,
                prefer="return=representation",
            )
            or []
        )

    def delete(self, table: str, access_token: str, filters: dict[str, Any]) -> list[dict]:
        if not filters:
            raise ValueError("delete() requires at least one filter")
        return (
            self._request(
                "DELETE",
                f"/rest/v1/{table}",
                access_token=access_token,
                params=self._filter_params(filters),
                prefer="return=representation",
            )
            or []
        )

    def close(self) -> None:
        self._session.close()

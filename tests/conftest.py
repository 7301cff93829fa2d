"""
tests/conftest.py -- Shared test fixtures for NoteKeep.

This module provides:
  - FakeBackend: an in-memory stand-in for the hosted auth/database service.
    It speaks the same method contract as core.backend.BackendClient and
    raises BackendError the same way, so actions and routes run unmodified.
  - _patch_lifespan(): wires the fake backend and a temp-file view cache into
    app.state, bypassing real startup (no network, no Sentry).
  - client: TestClient with follow_redirects=False for web and API tests.
  - alice / bob: two registered users with live sessions.

The environment variables must be set before any app import: get_settings()
is an lru_cache singleton and several modules read it at import time.
"""

from __future__ import annotations

import asyncio
import itertools
import os
import time
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import Optional

# CRITICAL: set before any core/auth import so Settings picks them up.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BACKEND_URL", "http://backend.test")
os.environ.setdefault("BACKEND_ANON_KEY", "test-anon-key")
os.environ.setdefault("BACKEND_JWT_SECRET", "test-jwt-secret-that-is-long-enough-0123")
os.environ.setdefault("SIGN_IN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient
from jose import JWTError, jwt

from asgi import app
from auth.models import AuthSession, AuthUser
from auth.tokens import code_challenge
from cache.store import ViewCache
from core.backend import BackendError
from notes.store import NoteStore

JWT_SECRET = os.environ["BACKEND_JWT_SECRET"]


def make_access_token(user: AuthUser, expires_in: int = 3600) -> str:
    """Mint a token shaped like the ones the hosted auth service issues."""
    claims = {
        "sub": user.id,
        "email": user.email,
        "aud": "authenticated",
        "role": "authenticated",
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(claims, JWT_SECRET, algorithm="HS256")


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------


class FakeBackend:
    """In-memory auth + notes table.

    Tests inject failures with fail_on("method_name", BackendError(...)); the
    next call to that method raises it once. Every call is appended to
    self.calls as (method_name, kwargs) for assertions.
    """

    def __init__(self) -> None:
        self.users: dict[str, dict] = {}  # email -> {"user": AuthUser, "password": str}
        self.refresh_tokens: dict[str, AuthUser] = {}
        self.auth_codes: dict[str, tuple[AuthUser, str]] = {}  # code -> (user, challenge)
        self.otp_hashes: dict[str, AuthUser] = {}
        self.rows: list[dict] = []
        self.calls: list[tuple[str, dict]] = []
        self.healthy = True
        self._failures: dict[str, BackendError] = {}
        self._ids = itertools.count(1)

    # -- helpers ----------------------------------------------------------

    def fail_on(self, method: str, error: BackendError) -> None:
        self._failures[method] = error

    def _enter(self, method: str, **kwargs) -> None:
        self.calls.append((method, kwargs))
        error = self._failures.pop(method, None)
        if error is not None:
            raise error

    def called(self, method: str) -> list[dict]:
        return [kwargs for name, kwargs in self.calls if name == method]

    def create_user(self, email: str, password: str) -> AuthUser:
        user = AuthUser(id=str(uuid.uuid4()), email=email, email_confirmed_at="2024-01-01T00:00:00Z")
        self.users[email] = {"user": user, "password": password}
        return user

    def issue_session(self, user: AuthUser, expires_in: int = 3600) -> AuthSession:
        refresh = uuid.uuid4().hex
        self.refresh_tokens[refresh] = user
        return AuthSession(
            access_token=make_access_token(user, expires_in),
            refresh_token=refresh,
            expires_in=expires_in,
            user=user,
        )

    def issue_auth_code(self, user: AuthUser, verifier: str) -> str:
        code = uuid.uuid4().hex
        self.auth_codes[code] = (user, code_challenge(verifier))
        return code

    def add_note(self, user: AuthUser, title: str, content: str = "") -> dict:
        row = {
            "id": str(next(self._ids)),
            "title": title,
            "content": content,
            "user_id": user.id,
            "created_at": f"2024-01-01T00:00:{len(self.rows):02d}Z",
        }
        self.rows.append(row)
        return row

    def _user_for_token(self, access_token: str) -> AuthUser:
        try:
            claims = jwt.decode(access_token, JWT_SECRET, algorithms=["HS256"], audience="authenticated")
        except JWTError as e:
            raise BackendError("invalid JWT", code="bad_jwt", status=401) from e
        for record in self.users.values():
            if record["user"].id == claims["sub"]:
                return record["user"]
        raise BackendError("User not found", code="user_not_found", status=404)

    @staticmethod
    def _matches(row: dict, filters: Optional[dict]) -> bool:
        return all(str(row.get(k)) == str(v) for k, v in (filters or {}).items())

    # -- auth ---------------------------------------------------------------

    def sign_up(self, email, password, redirect_to=None, code_challenge=None):
        self._enter("sign_up", email=email, redirect_to=redirect_to, code_challenge=code_challenge)
        if email in self.users:
            raise BackendError("User already registered", code="user_already_exists", status=422)
        return self.create_user(email, password)

    def sign_in_with_password(self, email, password):
        self._enter("sign_in_with_password", email=email)
        record = self.users.get(email)
        if record is None or record["password"] != password:
            raise BackendError("Invalid login credentials", code="invalid_credentials", status=400)
        return self.issue_session(record["user"])

    def refresh_session(self, refresh_token):
        self._enter("refresh_session", refresh_token=refresh_token)
        user = self.refresh_tokens.pop(refresh_token, None)
        if user is None:
            raise BackendError("Invalid Refresh Token: Refresh Token Not Found", code="refresh_token_not_found", status=400)
        return self.issue_session(user)

    def exchange_code_for_session(self, auth_code, code_verifier):
        self._enter("exchange_code_for_session", auth_code=auth_code)
        entry = self.auth_codes.pop(auth_code, None)
        if entry is None or entry[1] != code_challenge(code_verifier):
            raise BackendError("invalid flow state, no valid flow state found", code="flow_state_not_found", status=404)
        return self.issue_session(entry[0])

    def verify_otp(self, token_hash, otp_type):
        self._enter("verify_otp", token_hash=token_hash, otp_type=otp_type)
        user = self.otp_hashes.pop(token_hash, None)
        if user is None:
            raise BackendError("Email link is invalid or has expired", code="otp_expired", status=403)
        return self.issue_session(user)

    def sign_out(self, access_token):
        self._enter("sign_out", access_token=access_token)

    def reset_password_for_email(self, email, redirect_to=None, code_challenge=None):
        self._enter("reset_password_for_email", email=email, redirect_to=redirect_to, code_challenge=code_challenge)

    def update_user(self, access_token, password):
        self._enter("update_user", password=password)
        user = self._user_for_token(access_token)
        self.users[user.email]["password"] = password
        return user

    def get_user(self, access_token):
        self._enter("get_user")
        return self._user_for_token(access_token)

    def health(self):
        return self.healthy

    # -- rows -----------------------------------------------------------------

    def select(self, table, access_token, filters=None, order=None):
        self._enter("select", table=table, filters=filters, order=order)
        rows = [dict(r) for r in self.rows if self._matches(r, filters)]
        if order == "created_at.desc":
            rows.sort(key=lambda r: r["created_at"], reverse=True)
        return rows

    def insert(self, table, access_token, row):
        self._enter("insert", table=table, row=row)
        self._user_for_token(access_token)
        stored = {**row, "id": str(next(self._ids)), "created_at": f"2024-01-01T00:00:{len(self.rows):02d}Z"}
        self.rows.append(stored)
        return [dict(stored)]

    def update(self, table, access_token, values, filters):
        self._enter("update", table=table, values=values, filters=filters)
        changed = []
        for row in self.rows:
            if self._matches(row, filters):
                row.update(values)
                changed.append(dict(row))
        return changed

    def delete(self, table, access_token, filters):
        self._enter("delete", table=table, filters=filters)
        removed = [r for r in self.rows if self._matches(r, filters)]
        self.rows = [r for r in self.rows if not self._matches(r, filters)]
        return removed

    def close(self):
        pass


# ---------------------------------------------------------------------------
# Lifespan patch
# ---------------------------------------------------------------------------


def _patch_lifespan(backend: FakeBackend, cache: ViewCache):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown can .cancel() a
    real asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.backend = backend
        app.state.note_store = NoteStore(backend, table="notes")
        app.state.cache = cache
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def view_cache(tmp_path) -> Generator[ViewCache, None, None]:
    cache = ViewCache(tmp_path / "view_cache.db", ttl=300)
    yield cache
    cache.close()


@pytest.fixture
def note_store(fake_backend: FakeBackend) -> NoteStore:
    return NoteStore(fake_backend, table="notes")


@pytest.fixture
def alice(fake_backend: FakeBackend) -> AuthSession:
    user = fake_backend.create_user("alice@example.com", "alice-password")
    return fake_backend.issue_session(user)


@pytest.fixture
def bob(fake_backend: FakeBackend) -> AuthSession:
    user = fake_backend.create_user("bob@example.com", "bob-password")
    return fake_backend.issue_session(user)


@pytest.fixture
def client(fake_backend: FakeBackend, view_cache: ViewCache) -> Generator[TestClient, None, None]:
    """TestClient over the full app (API + web UI) wired to the fake backend.

    follow_redirects=False is essential: web tests assert on redirect
    *locations*, which are invisible once the client follows them.
    """
    app.router.lifespan_context = _patch_lifespan(fake_backend, view_cache)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as test_client:
        yield test_client


@pytest.fixture
def alice_client(client: TestClient, alice: AuthSession) -> TestClient:
    """client signed in as alice through the real sign-in form.

    Going through POST /sign-in (rather than planting cookies by hand) keeps
    the cookie jar identical to a browser's, so later Set-Cookie updates and
    deletions from the app replace these cookies instead of shadowing them.
    """
    resp = client.post("/sign-in", data={"email": "alice@example.com", "password": "alice-password"})
    assert resp.status_code == 302 and resp.headers["location"] == "/notes"
    return client

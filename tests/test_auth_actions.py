"""Tests for auth/actions.py -- every redirect branch of the account operations.

The actions return Redirect values, so these tests need no HTTP client: they
assert on the redirect location (including the exact encoded message) and on
the cookie instructions carried alongside it.
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest

from auth import actions
from auth.tokens import code_challenge
from core.backend import BackendError

ORIGIN = "http://localhost:8000"


def _message(location: str, kind: str) -> str:
    return parse_qs(urlsplit(location).query)[kind][0]


class TestEncodedRedirect:
    def test_spaces_encoded_as_percent_20(self):
        result = actions.encoded_redirect("error", "/sign-up", "Email and password are required")
        assert result.location == "/sign-up?error=Email%20and%20password%20are%20required"

    def test_reserved_characters_escaped(self):
        result = actions.encoded_redirect("success", "/x", "a&b=c?")
        assert result.location == "/x?success=a%26b%3Dc%3F"

    def test_appends_to_existing_query(self):
        result = actions.encoded_redirect("error", "/sign-in?next=/notes", "nope")
        assert result.location == "/sign-in?next=/notes&error=nope"


class TestSafeNext:
    @pytest.mark.parametrize("target", ["/notes", "/notes/reset-password", "/notes?x=1"])
    def test_accepts_local_paths(self, target):
        assert actions.safe_next(target) == target

    @pytest.mark.parametrize(
        "target",
        ["https://attacker.com", "//attacker.com", "/\\attacker.com", "notes", "", None, "javascript:alert(1)"],
    )
    def test_rejects_offsite_or_malformed(self, target):
        assert actions.safe_next(target) == "/notes"

    def test_custom_default(self):
        assert actions.safe_next("//evil", default="/forgot-password") == "/forgot-password"


class TestSignUp:
    def test_missing_fields(self, fake_backend):
        result = actions.sign_up(fake_backend, "", "pw", ORIGIN)
        assert result.location == "/sign-up?error=Email%20and%20password%20are%20required"
        assert fake_backend.calls == []

    def test_success_message_and_pkce(self, fake_backend):
        result = actions.sign_up(fake_backend, "new@example.com", "pw", ORIGIN)
        assert _message(result.location, "success") == (
            "Thanks for signing up! Please check your email for a verification link."
        )
        assert result.code_verifier

        call = fake_backend.called("sign_up")[0]
        assert call["redirect_to"] == f"{ORIGIN}/auth/callback"
        assert call["code_challenge"] == code_challenge(result.code_verifier)

    def test_backend_message_shown(self, fake_backend):
        fake_backend.create_user("taken@example.com", "pw")
        result = actions.sign_up(fake_backend, "taken@example.com", "pw", ORIGIN)
        assert _message(result.location, "error") == "User already registered"
        assert result.code_verifier is None


class TestSignIn:
    def test_success_goes_to_notes_with_session(self, fake_backend, alice):
        result = actions.sign_in(fake_backend, "alice@example.com", "alice-password")
        assert result.location == "/notes"
        assert result.session is not None
        assert result.session.user.id == alice.user.id

    def test_honours_safe_next(self, fake_backend, alice):
        result = actions.sign_in(fake_backend, "alice@example.com", "alice-password", next_url="/notes/reset-password")
        assert result.location == "/notes/reset-password"

    def test_ignores_offsite_next(self, fake_backend, alice):
        result = actions.sign_in(fake_backend, "alice@example.com", "alice-password", next_url="//evil.example")
        assert result.location == "/notes"

    def test_wrong_password(self, fake_backend, alice):
        result = actions.sign_in(fake_backend, "alice@example.com", "wrong")
        assert result.location == "/sign-in?error=Invalid%20login%20credentials"
        assert result.session is None

    def test_unknown_user_same_message(self, fake_backend):
        result = actions.sign_in(fake_backend, "nobody@example.com", "pw")
        assert _message(result.location, "error") == "Invalid login credentials"

    def test_network_failure(self, fake_backend):
        fake_backend.fail_on(
            "sign_in_with_password",
            BackendError("Could not reach the backend service.", code="network_error"),
        )
        result = actions.sign_in(fake_backend, "alice@example.com", "pw")
        assert _message(result.location, "error") == "Could not reach the backend service."


class TestSignOut:
    def test_clears_session_and_ends_backend_session(self, fake_backend, alice):
        result = actions.sign_out(fake_backend, alice.access_token)
        assert result.location == "/sign-in"
        assert result.clear_session is True
        assert fake_backend.called("sign_out") == [{"access_token": alice.access_token}]

    def test_backend_failure_still_signs_out(self, fake_backend, alice):
        fake_backend.fail_on("sign_out", BackendError("Session not found", status=404))
        result = actions.sign_out(fake_backend, alice.access_token)
        assert result.location == "/sign-in"
        assert result.clear_session is True

    def test_without_token_skips_backend(self, fake_backend):
        result = actions.sign_out(fake_backend, None)
        assert result.clear_session is True
        assert fake_backend.calls == []


class TestForgotPassword:
    def test_missing_email(self, fake_backend):
        result = actions.forgot_password(fake_backend, "", ORIGIN)
        assert result.location == "/forgot-password?error=Email%20is%20required"

    def test_success_message(self, fake_backend):
        result = actions.forgot_password(fake_backend, "alice@example.com", ORIGIN)
        assert _message(result.location, "success") == "Check your email for a link to reset your password."
        call = fake_backend.called("reset_password_for_email")[0]
        assert call["redirect_to"] == f"{ORIGIN}/auth/callback?redirect_to=/notes/reset-password"
        assert call["code_challenge"] == code_challenge(result.code_verifier)

    def test_callback_url_wins_over_message(self, fake_backend):
        result = actions.forgot_password(fake_backend, "alice@example.com", ORIGIN, callback_url="/sign-in")
        assert result.location == "/sign-in"
        assert result.code_verifier

    def test_offsite_callback_url_ignored(self, fake_backend):
        result = actions.forgot_password(fake_backend, "a@example.com", ORIGIN, callback_url="https://evil.example")
        assert result.location == "/forgot-password"

    def test_backend_failure_generic_message(self, fake_backend):
        fake_backend.fail_on("reset_password_for_email", BackendError("For security purposes...", status=429))
        result = actions.forgot_password(fake_backend, "alice@example.com", ORIGIN)
        assert result.location == "/forgot-password?error=Could%20not%20reset%20password"


class TestResetPassword:
    def test_missing_fields(self, fake_backend, alice):
        result = actions.reset_password(fake_backend, alice.access_token, "new", "")
        assert _message(result.location, "error") == "Password and confirm password are required"
        assert result.location.startswith("/notes/reset-password?")

    def test_mismatch(self, fake_backend, alice):
        result = actions.reset_password(fake_backend, alice.access_token, "one", "two")
        assert result.location == "/notes/reset-password?error=Passwords%20do%20not%20match"
        assert fake_backend.called("update_user") == []

    def test_success(self, fake_backend, alice):
        result = actions.reset_password(fake_backend, alice.access_token, "brand-new", "brand-new")
        assert result.location == "/notes/reset-password?success=Password%20updated"
        assert fake_backend.users["alice@example.com"]["password"] == "brand-new"

    def test_backend_failure(self, fake_backend, alice):
        fake_backend.fail_on("update_user", BackendError("Password should be at least 6 characters", status=422))
        result = actions.reset_password(fake_backend, alice.access_token, "x", "x")
        assert result.location == "/notes/reset-password?error=Password%20update%20failed"

    def test_no_session(self, fake_backend):
        result = actions.reset_password(fake_backend, None, "brand-new", "brand-new")
        assert _message(result.location, "error") == "Password update failed"


class TestAuthCallback:
    def test_pkce_code_exchanged_for_session(self, fake_backend, alice):
        verifier = "v" * 64
        code = fake_backend.issue_auth_code(alice.user, verifier)
        result = actions.complete_auth_callback(fake_backend, code=code, code_verifier=verifier)
        assert result.location == "/notes"
        assert result.session.user.id == alice.user.id
        assert result.clear_verifier is True

    def test_recovery_lands_on_reset_page(self, fake_backend, alice):
        verifier = "w" * 64
        code = fake_backend.issue_auth_code(alice.user, verifier)
        result = actions.complete_auth_callback(
            fake_backend, code=code, code_verifier=verifier, redirect_to="/notes/reset-password"
        )
        assert result.location == "/notes/reset-password"

    def test_wrong_verifier(self, fake_backend, alice):
        code = fake_backend.issue_auth_code(alice.user, "a" * 64)
        result = actions.complete_auth_callback(fake_backend, code=code, code_verifier="b" * 64)
        assert _message(result.location, "error") == "Could not verify your email link"
        assert result.session is None
        assert result.clear_verifier is True

    def test_code_without_verifier(self, fake_backend, alice):
        code = fake_backend.issue_auth_code(alice.user, "a" * 64)
        result = actions.complete_auth_callback(fake_backend, code=code)
        assert result.location.startswith("/sign-in?error=")
        assert fake_backend.called("exchange_code_for_session") == []

    def test_token_hash(self, fake_backend, alice):
        fake_backend.otp_hashes["hash-1"] = alice.user
        result = actions.complete_auth_callback(fake_backend, token_hash="hash-1", otp_type="signup")
        assert result.location == "/notes"
        assert result.session.user.id == alice.user.id

    def test_token_hash_unknown_type(self, fake_backend, alice):
        fake_backend.otp_hashes["hash-2"] = alice.user
        result = actions.complete_auth_callback(fake_backend, token_hash="hash-2", otp_type="bogus")
        assert result.session is None
        assert fake_backend.called("verify_otp") == []

    def test_offsite_redirect_to_ignored(self, fake_backend, alice):
        fake_backend.otp_hashes["hash-3"] = alice.user
        result = actions.complete_auth_callback(
            fake_backend, token_hash="hash-3", otp_type="recovery", redirect_to="https://evil.example"
        )
        assert result.location == "/notes"

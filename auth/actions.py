"""
auth/actions.py -- Form-driven account operations: sign-up, sign-in, password
reset, sign-out, and the email-link callback.

Every operation ends in a redirect. Outcomes that need a message carry it in
the query string via encoded_redirect(): "/sign-up?error=Email%20and..." or
"/sign-up?success=Thanks...". The page template renders that message
(autoescaped) above the form.

The functions here know nothing about FastAPI. They return a Redirect value
describing where to go and which cookies to set or clear; web/routes.py turns
it into a RedirectResponse.

Backend failures are logged and reported via core.reporting before being
mapped to a user-facing message. Nothing is retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlencode

from auth.models import AuthSession
from auth.tokens import code_challenge, generate_code_verifier
from core.backend import BackendClient, BackendError
from core.reporting import capture_exception

logger = logging.getLogger("notekeep.auth.actions")

SIGN_IN_PATH = "/sign-in"
SIGN_UP_PATH = "/sign-up"
FORGOT_PASSWORD_PATH = "/forgot-password"
RESET_PASSWORD_PATH = "/notes/reset-password"
NOTES_PATH = "/notes"
CALLBACK_PATH = "/auth/callback"

_EMAIL_LINK_TYPES = {"signup", "recovery", "email", "invite", "magiclink", "email_change"}


@dataclass
class Redirect:
    """Where to send the browser, and what to do with its session cookies.

    session        -- new tokens to write as cookies (sign-in, callback).
    code_verifier  -- PKCE verifier to keep until the email link comes back.
    clear_session  -- drop the access/refresh cookies (sign-out).
    clear_verifier -- drop the PKCE cookie once the callback consumed it.
    """

    location: str
    session: Optional[AuthSession] = None
    code_verifier: Optional[str] = None
    clear_session: bool = False
    clear_verifier: bool = False


def encoded_redirect(kind: str, path: str, message: str) -> Redirect:
    """Redirect to path with message URL-encoded under the kind key.

    kind is "error" or "success". Spaces encode as %20, not "+", so the
    message round-trips through any query parser.
    """
    separator = "&" if "?" in path else "?"
    return Redirect(f"{path}{separator}{urlencode({kind: message}, quote_via=quote)}")


def safe_next(next_url: Optional[str], default: str = NOTES_PATH) -> str:
    """Validate a post-action redirect target. Only accept relative paths.

    Prevents open redirect attacks where an attacker crafts a URL like:
      /sign-in?next=https://attacker.com  or  /sign-in?next=//attacker.com

    Both would redirect off-site. We only allow paths that:
    - Start with "/" (relative, server-local)
    - Do NOT start with "//" (protocol-relative URL) or contain a backslash
      (some browsers normalise "/\\host" to "//host")
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//") and "\\" not in next_url:
        return next_url
    return default


# ---------------------------------------------------------------------------
# Sign-up
# ---------------------------------------------------------------------------


def sign_up(backend: BackendClient, email: Optional[str], password: Optional[str], origin: str) -> Redirect:
    if not email or not password:
        return encoded_redirect("error", SIGN_UP_PATH, "Email and password are required")

    verifier = generate_code_verifier()
    try:
        backend.sign_up(
            email,
            password,
            redirect_to=f"{origin}{CALLBACK_PATH}",
            code_challenge=code_challenge(verifier),
        )
    except BackendError as e:
        capture_exception(e, "sign_up")
        return encoded_redirect("error", SIGN_UP_PATH, e.message)

    logger.info("Sign-up requested, confirmation email sent")
    result = encoded_redirect(
        "success",
        SIGN_UP_PATH,
        "Thanks for signing up! Please check your email for a verification link.",
    )
    result.code_verifier = verifier
    return result


# ---------------------------------------------------------------------------
# Sign-in / sign-out
# ---------------------------------------------------------------------------


def sign_in(
    backend: BackendClient,
    email: Optional[str],
    password: Optional[str],
    next_url: Optional[str] = None,
) -> Redirect:
    try:
        session = backend.sign_in_with_password(email or "", password or "")
    except BackendError as e:
        # Wrong credentials are routine; only report failures the user did not cause.
        if e.status is None or e.status >= 500:
            capture_exception(e, "sign_in")
        else:
            logger.info("Sign-in rejected: %s", e)
        return encoded_redirect("error", SIGN_IN_PATH, e.message)

    logger.info("User %s signed in", session.user.id)
    return Redirect(safe_next(next_url), session=session)


def sign_out(backend: BackendClient, access_token: Optional[str]) -> Redirect:
    """End the backend session and clear cookies. Backend failure never blocks sign-out."""
    if access_token:
        try:
            backend.sign_out(access_token)
        except BackendError as e:
            capture_exception(e, "sign_out")
    return Redirect(SIGN_IN_PATH, clear_session=True)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


def forgot_password(
    backend: BackendClient,
    email: Optional[str],
    origin: str,
    callback_url: Optional[str] = None,
) -> Redirect:
    if not email:
        return encoded_redirect("error", FORGOT_PASSWORD_PATH, "Email is required")

    verifier = generate_code_verifier()
    try:
        backend.reset_password_for_email(
            email,
            redirect_to=f"{origin}{CALLBACK_PATH}?redirect_to={RESET_PASSWORD_PATH}",
            code_challenge=code_challenge(verifier),
        )
    except BackendError as e:
        capture_exception(e, "forgot_password")
        return encoded_redirect("error", FORGOT_PASSWORD_PATH, "Could not reset password")

    if callback_url:
        result = Redirect(safe_next(callback_url, default=FORGOT_PASSWORD_PATH))
    else:
        result = encoded_redirect(
            "success",
            FORGOT_PASSWORD_PATH,
            "Check your email for a link to reset your password.",
        )
    result.code_verifier = verifier
    return result


def reset_password(
    backend: BackendClient,
    access_token: Optional[str],
    password: Optional[str],
    confirm_password: Optional[str],
) -> Redirect:
    if not password or not confirm_password:
        return encoded_redirect("error", RESET_PASSWORD_PATH, "Password and confirm password are required")
    if password != confirm_password:
        return encoded_redirect("error", RESET_PASSWORD_PATH, "Passwords do not match")
    if not access_token:
        return encoded_redirect("error", RESET_PASSWORD_PATH, "Password update failed")

    try:
        backend.update_user(access_token, password=password)
    except BackendError as e:
        capture_exception(e, "reset_password")
        return encoded_redirect("error", RESET_PASSWORD_PATH, "Password update failed")

    return encoded_redirect("success", RESET_PASSWORD_PATH, "Password updated")


# ---------------------------------------------------------------------------
# Email-link callback
# ---------------------------------------------------------------------------


def complete_auth_callback(
    backend: BackendClient,
    code: Optional[str] = None,
    token_hash: Optional[str] = None,
    otp_type: Optional[str] = None,
    redirect_to: Optional[str] = None,
    code_verifier: Optional[str] = None,
) -> Redirect:
    """Turn an email link (PKCE code or token_hash) into a signed-in session.

    Lands on the safe redirect_to (e.g. /notes/reset-password for recovery
    links) or /notes.
    """
    failure = encoded_redirect("error", SIGN_IN_PATH, "Could not verify your email link")
    failure.clear_verifier = True

    try:
        if code and code_verifier:
            session = backend.exchange_code_for_session(code, code_verifier)
        elif token_hash and otp_type in _EMAIL_LINK_TYPES:
            session = backend.verify_otp(token_hash, otp_type)
        else:
            logger.warning("Auth callback without a usable code (code=%s, verifier=%s)", bool(code), bool(code_verifier))
            return failure
    except BackendError as e:
        capture_exception(e, "auth_callback")
        return failure

    return Redirect(safe_next(redirect_to), session=session, clear_verifier=True)

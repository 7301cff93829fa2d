"""
web/routes.py -- Jinja2 template routes for the NoteKeep web UI.

These routes serve server-rendered HTML and handle plain form POSTs. They share
app.state with the API routes (same backend client, note store, view cache)
but answer with pages and redirects instead of JSON.

Every form POST ends in a 302. Outcomes that need a message travel in the
query string (see auth.actions.encoded_redirect) and are rendered by
partials/form_message.html on the target page.

Route registration order matters. FastAPI resolves same-level paths in order:
  - GET/POST /notes/reset-password must be registered before the
    /notes/{note_id} routes or FastAPI captures "reset-password" as a note id.

Routes:
  GET  /                          -- redirect to /notes or /sign-in by auth state
  GET  /sign-in                   -- sign-in form
  POST /sign-in                   -- password sign-in, sets session cookies
  GET  /sign-up                   -- sign-up form
  POST /sign-up                   -- register, confirmation email sent
  GET  /forgot-password           -- password reset request form
  POST /forgot-password           -- send reset email
  GET  /auth/callback             -- email link landing: exchange code for session
  POST /sign-out                  -- end session, redirect /sign-in
  GET  /notes                     -- note list + create form (auth required)
  POST /notes                     -- create note
  GET  /notes/reset-password      -- new password form (auth required)
  POST /notes/reset-password      -- update password
  GET  /notes/{note_id}/edit      -- edit form (auth required, owner only)
  POST /notes/{note_id}           -- update note
  POST /notes/{note_id}/delete    -- delete note
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from api.limiter import limiter, sign_in_limit
from auth import actions as auth_actions
from auth.actions import Redirect, encoded_redirect, safe_next
from auth.dependencies import get_access_token, try_get_current_user
from auth.tokens import PKCE_COOKIE, clear_session_cookies, set_pkce_cookie, set_session_cookies
from core.config import get_settings
from notes import actions as note_actions
from notes.models import ActionResult

logger = logging.getLogger("notekeep.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# Expose try_get_current_user as a Jinja2 global so layout.html can render the
# signed-in header without every handler passing current_user explicitly.
templates.env.globals["try_get_current_user"] = try_get_current_user
router = APIRouter()

_settings = get_settings()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _origin(request: Request) -> str:
    """Public origin for links in outgoing emails.

    SITE_URL wins when configured; otherwise the browser's Origin header, then
    the URL the request arrived on.
    """
    if _settings.site_url:
        return _settings.site_url.rstrip("/")
    origin = request.headers.get("origin")
    if origin:
        return origin.rstrip("/")
    return str(request.base_url).rstrip("/")


def _to_response(result: Redirect) -> RedirectResponse:
    """Render an action's Redirect as a 302 with the requested cookie changes."""
    resp = RedirectResponse(result.location, status_code=302)
    if result.session is not None:
        set_session_cookies(resp, result.session)
        resp.headers["Cache-Control"] = "no-store"
    if result.clear_session:
        clear_session_cookies(resp)
    if result.code_verifier:
        set_pkce_cookie(resp, result.code_verifier)
    if result.clear_verifier:
        resp.delete_cookie(PKCE_COOKIE)
    return resp


def _result_redirect(result: ActionResult, path: str, success_message: str, error_path: Optional[str] = None):
    """Map a note ActionResult onto an encoded redirect."""
    if result.success:
        return _to_response(encoded_redirect("success", path, success_message))
    return _to_response(encoded_redirect("error", error_path or path, result.error or "Something went wrong"))


def _form_message(request: Request) -> dict:
    """Collect ?error= / ?success= / ?message= for partials/form_message.html.

    Values are rendered with Jinja2 autoescaping, so reflecting them is safe.
    """
    params = request.query_params
    return {kind: params[kind] for kind in ("error", "success", "message") if params.get(kind)}


def _require_auth(request: Request) -> Optional[RedirectResponse]:
    """Check if the current request is authenticated.

    Returns a RedirectResponse to /sign-in if not authenticated, None if OK.
    Call at the top of protected route handlers:
        if redirect := _require_auth(request):
            return redirect
    """
    if try_get_current_user(request) is None:
        return RedirectResponse(f"/sign-in?next={request.url.path}", status_code=302)
    return None


def _render(request: Request, name: str, context: Optional[dict] = None) -> HTMLResponse:
    ctx = {"form_message": _form_message(request)}
    ctx.update(context or {})
    return templates.TemplateResponse(request, name, ctx)


# ---------------------------------------------------------------------------
# GET / -- landing redirect
# ---------------------------------------------------------------------------


@router.get("/")
def index(request: Request) -> RedirectResponse:
    if try_get_current_user(request) is not None:
        return RedirectResponse("/notes", status_code=302)
    return RedirectResponse("/sign-in", status_code=302)


# ---------------------------------------------------------------------------
# Sign-in / sign-up / sign-out
# ---------------------------------------------------------------------------


@router.get("/sign-in", response_class=HTMLResponse)
def sign_in_form(request: Request) -> HTMLResponse:
    """Render the sign-in form. Already signed-in users go straight to /notes."""
    if try_get_current_user(request) is not None:
        return RedirectResponse("/notes", status_code=302)
    return _render(request, "sign_in.html", {"next": safe_next(request.query_params.get("next"))})


@router.post("/sign-in", response_class=HTMLResponse)
@limiter.limit(sign_in_limit)
def sign_in_post(
    request: Request,
    email: Optional[str] = Form(default=None),
    password: Optional[str] = Form(default=None),
    next_url: Optional[str] = Form(default=None, alias="next"),
) -> RedirectResponse:
    backend = request.app.state.backend
    next_url = next_url or request.query_params.get("next")
    return _to_response(auth_actions.sign_in(backend, email, password, next_url))


@router.get("/sign-up", response_class=HTMLResponse)
def sign_up_form(request: Request) -> HTMLResponse:
    if try_get_current_user(request) is not None:
        return RedirectResponse("/notes", status_code=302)
    return _render(request, "sign_up.html")


@router.post("/sign-up", response_class=HTMLResponse)
def sign_up_post(
    request: Request,
    email: Optional[str] = Form(default=None),
    password: Optional[str] = Form(default=None),
) -> RedirectResponse:
    backend = request.app.state.backend
    return _to_response(auth_actions.sign_up(backend, email, password, _origin(request)))


@router.post("/sign-out")
def sign_out(request: Request) -> RedirectResponse:
    backend = request.app.state.backend
    return _to_response(auth_actions.sign_out(backend, get_access_token(request)))


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.get("/forgot-password", response_class=HTMLResponse)
def forgot_password_form(request: Request) -> HTMLResponse:
    return _render(request, "forgot_password.html")


@router.post("/forgot-password", response_class=HTMLResponse)
def forgot_password_post(
    request: Request,
    email: Optional[str] = Form(default=None),
    callbackUrl: Optional[str] = Form(default=None),  # noqa: N803 -- form field name
) -> RedirectResponse:
    backend = request.app.state.backend
    return _to_response(auth_actions.forgot_password(backend, email, _origin(request), callbackUrl))


@router.get("/auth/callback")
def auth_callback(request: Request) -> RedirectResponse:
    """Land an email link: exchange its code (or token_hash) for a session."""
    params = request.query_params
    result = auth_actions.complete_auth_callback(
        request.app.state.backend,
        code=params.get("code"),
        token_hash=params.get("token_hash"),
        otp_type=params.get("type"),
        redirect_to=params.get("redirect_to"),
        code_verifier=request.cookies.get(PKCE_COOKIE),
    )
    return _to_response(result)


# ---------------------------------------------------------------------------
# Notes (reset-password MUST precede /notes/{note_id})
# ---------------------------------------------------------------------------


@router.get("/notes", response_class=HTMLResponse)
def notes_page(request: Request) -> HTMLResponse:
    if redirect := _require_auth(request):
        return redirect
    user = try_get_current_user(request)
    notes = note_actions.get_notes(
        request.app.state.note_store,
        request.app.state.cache,
        user,
        get_access_token(request),
    )
    return _render(request, "notes.html", {"notes": notes, "user": user})


@router.post("/notes", response_class=HTMLResponse)
def notes_create(
    request: Request,
    title: Optional[str] = Form(default=None),
    content: Optional[str] = Form(default=None),
) -> RedirectResponse:
    if redirect := _require_auth(request):
        return redirect
    result = note_actions.create_note(
        request.app.state.note_store,
        request.app.state.cache,
        try_get_current_user(request),
        get_access_token(request),
        title,
        content,
    )
    return _result_redirect(result, "/notes", "Note created")


@router.get("/notes/reset-password", response_class=HTMLResponse)
def reset_password_form(request: Request) -> HTMLResponse:
    if redirect := _require_auth(request):
        return redirect
    return _render(request, "reset_password.html")


@router.post("/notes/reset-password", response_class=HTMLResponse)
def reset_password_post(
    request: Request,
    password: Optional[str] = Form(default=None),
    confirmPassword: Optional[str] = Form(default=None),  # noqa: N803 -- form field name
) -> RedirectResponse:
    if redirect := _require_auth(request):
        return redirect
    backend = request.app.state.backend
    return _to_response(
        auth_actions.reset_password(backend, get_access_token(request), password, confirmPassword)
    )


@router.get("/notes/{note_id}/edit", response_class=HTMLResponse)
def note_edit_form(request: Request, note_id: str) -> HTMLResponse:
    if redirect := _require_auth(request):
        return redirect
    note = note_actions.get_note(
        request.app.state.note_store,
        try_get_current_user(request),
        note_id,
        get_access_token(request),
    )
    if note is None:
        return _to_response(encoded_redirect("error", "/notes", "Note not found"))
    return _render(request, "note_edit.html", {"note": note})


@router.post("/notes/{note_id}", response_class=HTMLResponse)
def note_update(
    request: Request,
    note_id: str,
    title: Optional[str] = Form(default=None),
    content: Optional[str] = Form(default=None),
) -> RedirectResponse:
    if redirect := _require_auth(request):
        return redirect
    result = note_actions.update_note(
        request.app.state.note_store,
        request.app.state.cache,
        try_get_current_user(request),
        get_access_token(request),
        note_id,
        title,
        content,
    )
    return _result_redirect(result, "/notes", "Note updated", error_path=f"/notes/{note_id}/edit")


@router.post("/notes/{note_id}/delete", response_class=HTMLResponse)
def note_delete(request: Request, note_id: str) -> RedirectResponse:
    if redirect := _require_auth(request):
        return redirect
    result = note_actions.delete_note(
        request.app.state.note_store,
        request.app.state.cache,
        try_get_current_user(request),
        get_access_token(request),
        note_id,
    )
    return _result_redirect(result, "/notes", "Note deleted")

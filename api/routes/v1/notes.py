"""
api/routes/v1/notes.py -- Note CRUD REST endpoints.

Routes:
  GET    /api/v1/notes              -- list the caller's notes
  POST   /api/v1/notes              -- create a note
  GET    /api/v1/notes/{note_id}    -- fetch one note (owner only)
  PATCH  /api/v1/notes/{note_id}    -- update title/content (owner only)
  DELETE /api/v1/notes/{note_id}    -- delete (owner only)

Handlers are plain `def` on purpose: every call blocks on the backend over
requests, so FastAPI runs them in its thread pool.

Failed actions come back as the shared error envelope, with the HTTP status
chosen from ActionResult.code (see _STATUS_BY_CODE).
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import ActionResponse, NoteCreate, NoteResponse, NoteUpdate
from auth.dependencies import get_access_token, get_current_user
from auth.models import AuthUser
from notes import actions
from notes.models import (
    BACKEND_ERROR,
    FORBIDDEN,
    NOT_FOUND,
    UNAUTHENTICATED,
    VALIDATION_ERROR,
    ActionResult,
)

# Auth policy:
# - every route requires auth (get_current_user); ownership is checked in notes.actions
router = APIRouter(dependencies=[Depends(get_current_user)])

_STATUS_BY_CODE = {
    VALIDATION_ERROR: 400,
    UNAUTHENTICATED: 401,
    FORBIDDEN: 403,
    NOT_FOUND: 404,
    BACKEND_ERROR: 502,
}


def _raise_for_result(result: ActionResult) -> None:
    if result.success:
        return
    code = result.code or BACKEND_ERROR
    raise HTTPException(
        status_code=_STATUS_BY_CODE.get(code, 400),
        detail={"code": code, "message": result.error or "Request failed."},
    )


def _action_response(result: ActionResult) -> ActionResponse:
    _raise_for_result(result)
    note = NoteResponse.from_note(result.note) if result.note is not None else None
    return ActionResponse(success=True, note=note)


@router.get("/notes", response_model=list[NoteResponse])
def list_notes(request: Request, current_user: AuthUser = Depends(get_current_user)) -> list[NoteResponse]:
    """Return the caller's notes, newest first. An unreachable backend yields []."""
    notes = actions.get_notes(
        request.app.state.note_store,
        request.app.state.cache,
        current_user,
        get_access_token(request),
    )
    return [NoteResponse.from_note(n) for n in notes]


@router.post("/notes", response_model=ActionResponse, status_code=201)
def create_note(
    request: Request,
    body: NoteCreate,
    current_user: AuthUser = Depends(get_current_user),
) -> ActionResponse:
    result = actions.create_note(
        request.app.state.note_store,
        request.app.state.cache,
        current_user,
        get_access_token(request),
        body.title,
        body.content,
    )
    return _action_response(result)


@router.get("/notes/{note_id}", response_model=NoteResponse)
def get_note(
    request: Request,
    note_id: str,
    current_user: AuthUser = Depends(get_current_user),
) -> NoteResponse:
    """Return one note. Foreign and missing notes are both 404 so ids cannot be probed."""
    note = actions.get_note(request.app.state.note_store, current_user, note_id, get_access_token(request))
    if note is None:
        raise HTTPException(status_code=404, detail={"code": NOT_FOUND, "message": "Note not found"})
    return NoteResponse.from_note(note)


@router.patch("/notes/{note_id}", response_model=ActionResponse)
def update_note(
    request: Request,
    note_id: str,
    body: NoteUpdate,
    current_user: AuthUser = Depends(get_current_user),
) -> ActionResponse:
    result = actions.update_note(
        request.app.state.note_store,
        request.app.state.cache,
        current_user,
        get_access_token(request),
        note_id,
        body.title,
        body.content,
    )
    return _action_response(result)


@router.delete("/notes/{note_id}", response_model=ActionResponse)
def delete_note(
    request: Request,
    note_id: str,
    current_user: AuthUser = Depends(get_current_user),
) -> ActionResponse:
    result = actions.delete_note(
        request.app.state.note_store,
        request.app.state.cache,
        current_user,
        get_access_token(request),
        note_id,
    )
    return _action_response(result)

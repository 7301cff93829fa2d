"""
notes/actions.py -- Note operations shared by the web UI and the JSON API.

Each operation is the same short sequence:
  validate presence -> call the backend -> branch on error -> invalidate the
  cached notes view.

Mutations return an ActionResult instead of raising, so web routes can turn
it into an encoded redirect and API routes into a JSON body. BackendError is
caught here, reported, and mapped to {"error": <backend message>}.

No side effects beyond the backend call, the cache, and logging.
"""

import logging
from typing import Optional

from auth.models import AuthUser
from cache.store import ViewCache
from core.backend import BackendError
from core.reporting import capture_exception
from notes.models import (
    BACKEND_ERROR,
    FORBIDDEN,
    NOT_FOUND,
    UNAUTHENTICATED,
    VALIDATION_ERROR,
    ActionResult,
    Note,
)
from notes.store import NoteStore

logger = logging.getLogger("notekeep.notes")

NOTES_PATH = "/notes"


def _revalidate(cache: Optional[ViewCache], user: AuthUser) -> None:
    if cache is not None:
        cache.invalidate(NOTES_PATH, user.id)


def _owned_note(
    store: NoteStore, user: AuthUser, note_id: str, access_token: str
) -> tuple[Optional[Note], Optional[ActionResult]]:
    """Fetch note_id and check it belongs to user.

    Returns (note, None) on success or (None, failure) when the note is missing
    or owned by someone else. BackendError propagates to the caller.
    """
    note = store.get(note_id, access_token)
    if note is None:
        return None, ActionResult.fail("Note not found", NOT_FOUND)
    if note.user_id != user.id:
        logger.warning("User %s attempted to modify note %s owned by %s", user.id, note_id, note.user_id)
        return None, ActionResult.fail("You do not have permission to modify this note", FORBIDDEN)
    return note, None


def get_notes(
    store: NoteStore,
    cache: Optional[ViewCache],
    user: AuthUser,
    access_token: str,
) -> list[Note]:
    """Return the user's notes, newest first. Returns [] if the backend fails."""
    if cache is not None:
        cached = cache.get(NOTES_PATH, user.id)
        if cached is not None:
            return [Note.from_row(r) for r in cached]

    try:
        notes = store.list_for_user(user, access_token)
    except BackendError as e:
        capture_exception(e, "get_notes", user_id=user.id)
        return []

    if cache is not None:
        cache.set(NOTES_PATH, user.id, [n.to_dict() for n in notes])
    return notes


def get_note(store: NoteStore, user: AuthUser, note_id: str, access_token: str) -> Optional[Note]:
    """Return one of the user's notes, or None if missing, foreign, or unreachable."""
    try:
        note, failure = _owned_note(store, user, note_id, access_token)
    except BackendError as e:
        capture_exception(e, "get_note", user_id=user.id, note_id=note_id)
        return None
    return note if failure is None else None


def create_note(
    store: NoteStore,
    cache: Optional[ViewCache],
    user: Optional[AuthUser],
    access_token: Optional[str],
    title: Optional[str],
    content: Optional[str] = None,
) -> ActionResult:
    if not title or not title.strip():
        return ActionResult.fail("Title is required", VALIDATION_ERROR)
    if user is None or not access_token:
        return ActionResult.fail("User not authenticated", UNAUTHENTICATED)

    try:
        note = store.create(Note(title=title, content=content or "", user_id=user.id), access_token)
    except BackendError as e:
        capture_exception(e, "create_note", user_id=user.id)
        return ActionResult.fail(e.message, BACKEND_ERROR)

    _revalidate(cache, user)
    logger.info("Note %s created by %s", note.id, user.id)
    return ActionResult.ok(note)


def update_note(
    store: NoteStore,
    cache: Optional[ViewCache],
    user: Optional[AuthUser],
    access_token: Optional[str],
    note_id: Optional[str],
    title: Optional[str],
    content: Optional[str] = None,
) -> ActionResult:
    """Replace title and content. content=None keeps the stored body; "" clears it."""
    if not note_id or not title or not title.strip():
        return ActionResult.fail("ID and title are required", VALIDATION_ERROR)
    if user is None or not access_token:
        return ActionResult.fail("User not authenticated", UNAUTHENTICATED)

    try:
        current, failure = _owned_note(store, user, note_id, access_token)
        if failure is not None:
            return failure
        if content is None:
            content = current.content
        updated = store.update(note_id, user, title, content, access_token)
    except BackendError as e:
        capture_exception(e, "update_note", user_id=user.id, note_id=note_id)
        return ActionResult.fail(e.message, BACKEND_ERROR)

    if updated is None:
        # Deleted between the ownership check and the update.
        return ActionResult.fail("Note not found", NOT_FOUND)

    _revalidate(cache, user)
    return ActionResult.ok(updated)


def delete_note(
    store: NoteStore,
    cache: Optional[ViewCache],
    user: Optional[AuthUser],
    access_token: Optional[str],
    note_id: Optional[str],
) -> ActionResult:
    if not note_id:
        return ActionResult.fail("ID is required", VALIDATION_ERROR)
    if user is None or not access_token:
        return ActionResult.fail("User not authenticated", UNAUTHENTICATED)

    try:
        _, failure = _owned_note(store, user, note_id, access_token)
        if failure is not None:
            return failure
        store.delete(note_id, user, access_token)
    except BackendError as e:
        capture_exception(e, "delete_note", user_id=user.id, note_id=note_id)
        return ActionResult.fail(e.message, BACKEND_ERROR)

    _revalidate(cache, user)
    logger.info("Note %s deleted by %s", note_id, user.id)
    return ActionResult.ok()

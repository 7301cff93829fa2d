"""
notes/store.py -- Repository for the remote notes table.

Pattern: Repository + Data Mapper. NoteStore is the repository; Note.from_row
is the mapper. Actions and routes never build backend filters themselves.

Every call carries the requester's access token so the backend's row-level
security applies on top of the explicit user_id filters below. BackendError
propagates unchanged -- the action layer decides what the user sees.
"""

from __future__ import annotations

from typing import Optional

from auth.models import AuthUser
from core.backend import BackendClient
from notes.models import Note


class NoteStore:
    """Note CRUD scoped to one table of one backend project.

    Usage:
        store = NoteStore(backend)
        notes = store.list_for_user(user, access_token)
    """

    def __init__(self, backend: BackendClient, table: str = "notes") -> None:
        self.backend = backend
        self.table = table

    def list_for_user(self, user: AuthUser, access_token: str) -> list[Note]:
        """Return the user's notes, newest first."""
        rows = self.backend.select(
            self.table,
            access_token,
            filters={"user_id": user.id},
            order="created_at.desc",
        )
        return [Note.from_row(r) for r in rows]

    def get(self, note_id: str, access_token: str) -> Optional[Note]:
        """Return the note with note_id, or None if it does not exist.

        Deliberately not filtered by user_id: callers need to tell "missing"
        apart from "owned by someone else" (see notes/actions._owned_note).
        """
        rows = self.backend.select(self.table, access_token, filters={"id": note_id})
        return Note.from_row(rows[0]) if rows else None

    def create(self, note: Note, access_token: str) -> Note:
        row = {"title": note.title, "content": note.content, "user_id": note.user_id}
        rows = self.backend.insert(self.table, access_token, row)
        return Note.from_row(rows[0]) if rows else note

    def update(self, note_id: str, user: AuthUser, title: str, content: str, access_token: str) -> Optional[Note]:
        """Update title and content. Returns None if no row matched."""
        rows = self.backend.update(
            self.table,
            access_token,
            values={"title": title, "content": content},
            filters={"id": note_id, "user_id": user.id},
        )
        return Note.from_row(rows[0]) if rows else None

    def delete(self, note_id: str, user: AuthUser, access_token: str) -> bool:
        """Delete the note. Returns True if a row was removed."""
        rows = self.backend.delete(self.table, access_token, filters={"id": note_id, "user_id": user.id})
        return len(rows) > 0

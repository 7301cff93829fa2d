"""
notes/models.py -- Domain dataclasses for notes.

These are pure data containers. Validation and ownership checks live in
notes/actions.py; persistence lives in notes/store.py.
"""

from dataclasses import dataclass
from typing import Optional

# ActionResult.code values. The API layer maps each one to an HTTP status.
VALIDATION_ERROR = "validation_error"
UNAUTHENTICATED = "unauthenticated"
NOT_FOUND = "not_found"
FORBIDDEN = "forbidden"
BACKEND_ERROR = "backend_error"


@dataclass
class Note:
    """A user-owned note row.

    id is None before the row is written to the backend; the backend assigns
    it (UUID or bigint, always handled as a string here).
    """

    title: str
    content: str = ""
    user_id: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "Note":
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            title=row.get("title") or "",
            content=row.get("content") or "",
            user_id=str(row["user_id"]) if row.get("user_id") is not None else None,
            created_at=row.get("created_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "user_id": self.user_id,
            "created_at": self.created_at,
        }


@dataclass
class ActionResult:
    """Outcome of a note mutation.

    Web routes turn it into an encoded redirect; API routes into
    {"success": true, ...} or the {"error": {"code", "message"}} envelope.
    """

    success: bool
    error: Optional[str] = None
    code: Optional[str] = None
    note: Optional[Note] = None

    @classmethod
    def ok(cls, note: Optional[Note] = None) -> "ActionResult":
        return cls(success=True, note=note)

    @classmethod
    def fail(cls, message: str, code: str) -> "ActionResult":
        return cls(success=False, error=message, code=code)

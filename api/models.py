"""
API request and response models for NoteKeep REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in notes/models.py and
auth/models.py, which own the internal domain representation. Route handlers
map between the two.

Note request bodies accept an empty or missing title on purpose: presence is
checked by notes.actions so the API answers with the same "Title is required"
message as the web form (a 400 envelope), not a 422.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from notes.models import Note

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=255)


class NoteCreate(BaseModel):
    """Request body for POST /api/v1/notes."""

    title: str = ""
    content: Optional[str] = Field(default=None, max_length=50_000)


class NoteUpdate(BaseModel):
    """Request body for PATCH /api/v1/notes/{note_id}. Omitted content keeps the stored body."""

    title: str = ""
    content: Optional[str] = Field(default=None, max_length=50_000)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class NoteResponse(BaseModel):
    """A single note as returned by the API."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    content: str = ""
    user_id: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_note(cls, note: Note) -> "NoteResponse":
        return cls(
            id=note.id or "",
            title=note.title,
            content=note.content,
            user_id=note.user_id,
            created_at=note.created_at,
        )


class ActionResponse(BaseModel):
    """Outcome of a note mutation: {"success": true} plus the affected note."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    note: Optional[NoteResponse] = None


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: str
    email: Optional[str] = None


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: Optional[str] = None


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = {}

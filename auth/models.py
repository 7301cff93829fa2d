"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond mapping the
backend's JSON). Stores, actions and routes do the work.

Identities are owned by the hosted auth backend. NoteKeep never sees a
password hash; it only holds the tokens the backend issues.

Layer rule: no imports from api/, web/, notes/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class AuthUser:
    """An identity as reported by the auth backend.

    id is the backend's stable user identifier (a UUID string) and is the
    value stored in notes.user_id.
    """

    id: str
    email: str | None = None
    email_confirmed_at: str | None = None

    @classmethod
    def from_payload(cls, data: dict) -> AuthUser:
        """Build from a /auth/v1/user body or the `user` key of a token response."""
        return cls(
            id=str(data["id"]),
            email=data.get("email"),
            email_confirmed_at=data.get("email_confirmed_at"),
        )

    @classmethod
    def from_claims(cls, claims: dict) -> AuthUser:
        """Build from verified access-token claims (sub is the user id)."""
        return cls(id=str(claims["sub"]), email=claims.get("email"))


@dataclass
class AuthSession:
    """Tokens issued by the backend after sign-in, refresh, or code exchange."""

    access_token: str
    refresh_token: str
    expires_in: int
    user: AuthUser

    @classmethod
    def from_payload(cls, data: dict) -> AuthSession:
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", ""),
            expires_in=int(data.get("expires_in") or 3600),
            user=AuthUser.from_payload(data["user"]),
        )

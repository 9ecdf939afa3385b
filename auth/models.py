"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the service
layer do the work; these only own the shape.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered QuizMaker account.

    email is always stored lower-cased and stripped; the UNIQUE constraint on
    the column therefore enforces case-insensitive uniqueness.

    password_hash is a bcrypt string. It never leaves the auth layer -- API
    response models copy only id, email and full_name.
    """

    email: str
    full_name: str
    password_hash: str
    id: str | None = None
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None
    last_login_at: str | None = None


@dataclass
class Session:
    """One authenticated device/browser instance.

    token_hash is SHA-256 of a random nonce generated at login. It is kept for
    auditing and uniqueness only; the bearer value checked on every request is
    the session id carried inside the signed token.

    A session is live iff is_active and now < expires_at. Once is_active is
    False it never flips back.
    """

    user_id: str
    token_hash: str
    expires_at: str
    id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: str | None = None
    last_active_at: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class TokenClaims:
    """Decoded content of a credential token. Timestamps are epoch seconds."""

    session_id: str
    user_id: str
    email: str
    issued_at: int
    expires_at: int


@dataclass(frozen=True)
class ClientInfo:
    """Request metadata recorded on a new session."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful signup or login."""

    user: User
    token: str
    session_id: str


@dataclass(frozen=True)
class SessionView:
    """A live session as shown to its owner."""

    id: str
    is_current: bool
    device: str
    created_at: str | None
    last_active_at: str | None
    expires_at: str
    ip_address: str | None
    user_agent: str | None

"""
auth/models.py -- Domain dataclasses for identity and session entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work.

Layer rule: no imports from api/, rbac/, projects/, tasks/, or activity/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered account.

    email is stored lower-cased and is the login identifier. Accounts are never
    hard-deleted; is_active=False is the soft-disable switch and blocks every
    authenticated action, including token refresh.
    """

    email: str
    display_name: str
    id: int | None = None
    hashed_password: str | None = None
    avatar_url: str | None = None
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class RefreshToken:
    """One live session.

    token_hash is HMAC-SHA256(REFRESH_SECRET_KEY, raw_value). The raw value is
    handed to the client once and never persisted, so a database dump does not
    yield usable sessions.
    """

    user_id: int
    token_hash: str
    expires_at: str  # ISO 8601 UTC
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime in seconds
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password


@dataclass(frozen=True)
class Identity:
    """The resolved caller of an authenticated request.

    Threaded explicitly through service calls instead of being looked up from
    request-scoped state.
    """

    user_id: int
    email: str

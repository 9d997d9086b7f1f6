"""
auth/store.py -- SQLAlchemy Core persistence layer for identities and sessions.

Pattern: Repository + Data Mapper. IdentityStore is the repository;
_row_to_user / _row_to_refresh_token are the mappers. Services never touch
SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  consume_refresh_token() is a conditional DELETE whose rowcount decides which
  of several concurrent refresh calls wins. Two callers may both read the row,
  but only one DELETE can report rowcount == 1, so a token value is consumed
  at most once.

  create_user() lets IntegrityError propagate on a duplicate email. The
  service layer translates it to ConflictError; the UNIQUE index is what
  actually closes the race between two concurrent registrations [M1].

Layer rule: no imports from api/, rbac/, projects/, tasks/, or activity/.
"""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, String, Table, Text, func, or_, select
from sqlalchemy.engine import Engine

from auth.models import RefreshToken, User
from core.db import LIKE_ESCAPE, contains_pattern, metadata, now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # lower-cased on write
    Column("hashed_password", Text, nullable=False),
    Column("display_name", String(100), nullable=False),
    Column("avatar_url", Text),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("expires_at", String(40), nullable=False, index=True),
    Column("created_at", String(40), nullable=False),
)

# Columns callers may change through update_user(). Anything else is rejected
# so a stray keyword can never overwrite id/email/created_at.
_MUTABLE_USER_FIELDS = {"display_name", "avatar_url", "hashed_password", "is_active"}


def _normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class IdentityStore:
    """Repository for User and RefreshToken rows.

    Usage:
        store = IdentityStore(create_db_engine("sqlite:///:memory:"))
        uid = store.create_user(User(email="a@example.com", display_name="A", hashed_password=h))
        user = store.get_by_email("A@example.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        stamp = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                users.insert().values(
                    email=_normalize_email(user.email),
                    hashed_password=user.hashed_password,
                    display_name=user.display_name,
                    avatar_url=user.avatar_url,
                    is_active=1 if user.is_active else 0,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == _normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def search_users(self, query: str, limit: int = 10) -> list[User]:
        """Active users whose email or display name contains query (case-insensitive)."""
        pattern = contains_pattern(query)
        with self.engine.connect() as conn:
            rows = conn.execute(
                users.select()
                .where(
                    (users.c.is_active == 1)
                    & or_(
                        func.lower(users.c.email).like(pattern, escape=LIKE_ESCAPE),
                        func.lower(users.c.display_name).like(pattern, escape=LIKE_ESCAPE),
                    )
                )
                .order_by(users.c.display_name, users.c.id)
                .limit(limit)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user and stamp updated_at.

        Accepted fields: display_name, avatar_url, hashed_password, is_active.
        is_active must be passed as bool; this method converts to int.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _MUTABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        fields["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(users.update().where(users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Refresh token queries
    # ------------------------------------------------------------------

    def add_refresh_token(self, token: RefreshToken) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                refresh_tokens.insert().values(
                    user_id=token.user_id,
                    token_hash=token.token_hash,
                    expires_at=token.expires_at,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_refresh_token(self, token_hash: str) -> RefreshToken | None:
        """Look up a session by its HMAC hash. O(1) via UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(refresh_tokens.select().where(refresh_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def consume_refresh_token(self, token_id: int, token_hash: str) -> bool:
        """Atomically delete one session row. True only for the caller whose DELETE removed it."""
        with self.engine.connect() as conn:
            result = conn.execute(
                refresh_tokens.delete().where(
                    (refresh_tokens.c.id == token_id) & (refresh_tokens.c.token_hash == token_hash)
                )
            )
            conn.commit()
        return result.rowcount == 1

    def delete_refresh_tokens(self, user_id: int, token_hash: str | None = None) -> int:
        """Delete one (token_hash given) or all sessions of user_id. Returns rows removed.

        The user_id condition is always applied, so a caller can never revoke
        another user's session even when they hold its raw value.
        """
        condition = refresh_tokens.c.user_id == user_id
        if token_hash is not None:
            condition = condition & (refresh_tokens.c.token_hash == token_hash)
        with self.engine.connect() as conn:
            result = conn.execute(refresh_tokens.delete().where(condition))
            conn.commit()
        return result.rowcount

    def purge_expired_refresh_tokens(self, now: str | None = None) -> int:
        """Delete every session whose expiry is at or before now. Returns rows removed."""
        cutoff = now or now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(refresh_tokens.delete().where(refresh_tokens.c.expires_at <= cutoff))
            conn.commit()
        return result.rowcount

    def count_refresh_tokens(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(refresh_tokens).where(refresh_tokens.c.user_id == user_id)
            ).scalar()
        return result or 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        display_name=row.display_name,
        avatar_url=row.avatar_url,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )

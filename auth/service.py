"""
auth/service.py -- Credential and session lifecycle.

TokenService issues, rotates, and revokes access/refresh pairs.
AuthService owns registration, login, logout, password change, profile
maintenance, and bearer-token resolution (authenticate).

Refresh rotation [R1]:
  1. Look the row up by HMAC hash.  Missing -> AuthInvalidError.
  2. Expired -> delete it, AuthExpiredError.
  3. Owning user inactive -> AccountDisabledError.
  4. Conditional DELETE of that exact row. rowcount 0 means a concurrent call
     consumed it first -> AuthInvalidError. Step 1 alone never decides the
     winner.
  5. Issue a brand-new pair.

Login [C1]: unknown email and wrong password produce the same message and the
same bcrypt cost. A disabled account is only reported as disabled once the
caller has proven they know its password.

Layer rule: no imports from api/, rbac/, projects/, tasks/, or activity/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from auth.models import Identity, RefreshToken, TokenPair, User
from auth.store import IdentityStore
from auth.tokens import (
    MAX_PASSWORD_BYTES,
    authenticate_user,
    create_access_token,
    decode_access_token,
    generate_refresh_token,
    hash_password,
    hash_refresh_token,
    verify_password,
)
from core.config import Settings
from core.db import now_iso, to_iso
from core.errors import (
    AccountDisabledError,
    AuthExpiredError,
    AuthInvalidError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger("taskboard.auth")

INVALID_CREDENTIALS = "Invalid email or password."
INVALID_REFRESH = "Invalid refresh token."
MIN_PASSWORD_LENGTH = 6


def _check_password_policy(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")


# ---------------------------------------------------------------------------
# TokenService
# ---------------------------------------------------------------------------


class TokenService:
    def __init__(self, store: IdentityStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings

    def issue(self, user: User) -> TokenPair:
        """Create an access JWT and persist a new refresh session for user."""
        access = create_access_token(
            user.id,
            user.email,
            self.settings.secret_key,
            self.settings.access_token_expire_seconds,
        )
        raw_refresh = generate_refresh_token()
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=self.settings.refresh_token_expire_seconds)
        self.store.add_refresh_token(
            RefreshToken(
                user_id=user.id,
                token_hash=self._hash(raw_refresh),
                expires_at=to_iso(expires_at),
            )
        )
        return TokenPair(
            access_token=access,
            refresh_token=raw_refresh,
            expires_in=self.settings.access_token_expire_seconds,
        )

    def refresh(self, raw_refresh: str) -> TokenPair:
        """Rotate a refresh token [R1]. The presented value is unusable afterwards."""
        token_hash = self._hash(raw_refresh)
        row = self.store.get_refresh_token(token_hash)
        if row is None:
            raise AuthInvalidError(INVALID_REFRESH)

        if row.expires_at <= now_iso():
            self.store.consume_refresh_token(row.id, token_hash)
            raise AuthExpiredError("Refresh token expired.")

        user = self.store.get_by_id(row.user_id)
        if user is None:
            raise AuthInvalidError(INVALID_REFRESH)
        if not user.is_active:
            raise AccountDisabledError("Account is disabled.")

        if not self.store.consume_refresh_token(row.id, token_hash):
            logger.warning("Refresh token for user %d already consumed (concurrent reuse)", user.id)
            raise AuthInvalidError(INVALID_REFRESH)

        return self.issue(user)

    def revoke(self, user_id: int, raw_refresh: str | None = None) -> int:
        """Delete one session (raw_refresh given) or every session of user_id.

        Idempotent: an unknown or already-revoked value removes nothing and
        is not an error.
        """
        token_hash = self._hash(raw_refresh) if raw_refresh else None
        return self.store.delete_refresh_tokens(user_id, token_hash)

    def purge_expired(self) -> int:
        removed = self.store.purge_expired_refresh_tokens()
        if removed:
            logger.info("Purged %d expired refresh tokens", removed)
        return removed

    def decode_access(self, access_token: str) -> dict:
        return decode_access_token(access_token, self.settings.secret_key)

    def _hash(self, raw_refresh: str) -> str:
        return hash_refresh_token(raw_refresh, self.settings.refresh_secret_key)


# ---------------------------------------------------------------------------
# AuthService
# ---------------------------------------------------------------------------


class AuthService:
    def __init__(self, store: IdentityStore, tokens: TokenService, settings: Settings) -> None:
        self.store = store
        self.tokens = tokens
        self.settings = settings

    # ------------------------------------------------------------------
    # Credential lifecycle
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, display_name: str) -> tuple[User, TokenPair]:
        """Create an account and open its first session.

        Raises ConflictError on a duplicate email (case-insensitive) and
        ForbiddenError when self-registration is switched off.
        """
        if not self.settings.self_registration_enabled:
            raise ForbiddenError("Self-registration is disabled.")
        _check_password_policy(password)
        if not display_name.strip():
            raise ValidationError("Display name must not be empty.")
        if self.store.get_by_email(email) is not None:
            raise ConflictError("Email already registered.")
        try:
            user_id = self.store.create_user(
                User(
                    email=email,
                    display_name=display_name.strip(),
                    hashed_password=hash_password(password, self.settings.bcrypt_rounds),
                )
            )
        except IntegrityError as exc:
            # A concurrent registration with the same email won the race [M1]
            raise ConflictError("Email already registered.") from exc
        user = self.store.get_by_id(user_id)
        logger.info("Registered user %d", user_id)
        return user, self.tokens.issue(user)

    def login(self, email: str, password: str) -> tuple[User, TokenPair]:
        """Verify credentials and open a new session. Existing sessions are untouched."""
        user = authenticate_user(self.store, email, password)
        if user is None:
            logger.info("Failed login attempt")
            raise AuthInvalidError(INVALID_CREDENTIALS)
        if not user.is_active:
            raise AccountDisabledError("Account is disabled.")
        return user, self.tokens.issue(user)

    def refresh(self, raw_refresh: str) -> TokenPair:
        return self.tokens.refresh(raw_refresh)

    def logout(self, user_id: int, raw_refresh: str | None = None) -> int:
        """End one session, or all of them when raw_refresh is omitted."""
        removed = self.tokens.revoke(user_id, raw_refresh)
        logger.info("User %d logged out (%d sessions removed)", user_id, removed)
        return removed

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        """Replace the password and revoke every refresh token of the user."""
        user = self._get_user(user_id)
        if not verify_password(current_password, user.hashed_password):
            raise AuthInvalidError("Current password is incorrect.")
        _check_password_policy(new_password)
        self.store.update_user(user_id, hashed_password=hash_password(new_password, self.settings.bcrypt_rounds))
        removed = self.tokens.revoke(user_id)
        logger.info("User %d changed password (%d sessions revoked)", user_id, removed)

    # ------------------------------------------------------------------
    # Bearer resolution
    # ------------------------------------------------------------------

    def authenticate(self, access_token: str) -> Identity:
        """Resolve an access token to an Identity.

        Raises AuthInvalidError / AuthExpiredError for a bad credential and
        AccountDisabledError when the user has been deactivated since issue.
        """
        claims = self.tokens.decode_access(access_token)
        user = self.store.get_by_id(claims["user_id"])
        if user is None:
            raise AuthInvalidError("Invalid access token.")
        if not user.is_active:
            raise AccountDisabledError("Account is disabled.")
        return Identity(user_id=user.id, email=user.email)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self, user_id: int) -> User:
        return self._get_user(user_id)

    def update_profile(self, user_id: int, display_name: str | None = None, avatar_url: str | None = None) -> User:
        fields: dict = {}
        if display_name is not None:
            if not display_name.strip():
                raise ValidationError("Display name must not be empty.")
            fields["display_name"] = display_name.strip()
        if avatar_url is not None:
            fields["avatar_url"] = avatar_url or None
        if fields and not self.store.update_user(user_id, **fields):
            raise NotFoundError("User not found.")
        return self._get_user(user_id)

    def deactivate(self, user_id: int) -> None:
        """Soft-disable the account and end all of its sessions."""
        if not self.store.update_user(user_id, is_active=False):
            raise NotFoundError("User not found.")
        self.tokens.revoke(user_id)
        logger.info("User %d deactivated", user_id)

    def search_users(self, query: str, limit: int = 10) -> list[User]:
        if not query.strip():
            return []
        return self.store.search_users(query, limit)

    def _get_user(self, user_id: int) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

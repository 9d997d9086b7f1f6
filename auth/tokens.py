"""
auth/tokens.py -- JWT, password hashing, and refresh-token utilities.

Security design decisions:
  JWT: python-jose with HS256. Access tokens are signed with SECRET_KEY and
       carry sub (user id), email, typ="access", iat, exp and a random jti.
       decode_access_token() raises AuthExpiredError for an expired signature
       and AuthInvalidError for anything else, including a token whose typ is
       not "access".

  Passwords: bcrypt used directly. The cost factor makes brute-force on
       low-entropy secrets expensive. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered [C1].

  Refresh tokens: secrets.token_urlsafe(48) gives 384 bits of entropy. Only
       HMAC-SHA256(REFRESH_SECRET_KEY, raw) is stored, so lookup is O(1) on a
       UNIQUE index and bcrypt's intentional slowness is unnecessary.

Layer rule: no imports from api/, rbac/, projects/, tasks/, or activity/.
Import from core/ is allowed -- core/ is the kernel and has no reverse
dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings
from core.errors import AuthExpiredError, AuthInvalidError

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import IdentityStore

logger = logging.getLogger("taskboard.auth")

_ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"  # noqa: S105 # nosec B105 -- claim discriminator, not a password

# bcrypt silently truncates (4.x) or rejects (5.x) inputs over 72 bytes.
MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a bcrypt hash of the given plaintext password.

    rounds defaults to Settings.bcrypt_rounds. Callers are expected to have
    enforced MAX_PASSWORD_BYTES already (the service layer does).
    """
    cost = rounds if rounds is not None else get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=cost)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash or over-long input.
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load with the configured cost so a lookup miss costs
# the same as a real verification.
_DUMMY_HASH: str = hash_password("taskboard_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, email: str, secret_key: str, expire_seconds: int) -> str:
    """Encode a signed access JWT.

    Args:
        user_id:        Numeric user ID, stored as the string subject claim.
        email:          Informational claim for clients; never trusted for lookups.
        secret_key:     Settings.secret_key. Distinct from the refresh secret.
        expire_seconds: Lifetime in seconds (Settings.access_token_expire_seconds).
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "typ": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(seconds=expire_seconds),
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str, secret_key: str) -> dict:
    """Verify an access JWT and return its claims.

    Raises:
        AuthExpiredError: signature valid but exp has passed.
        AuthInvalidError: any other verification failure, a missing or
            non-numeric subject, or a credential of the wrong class.
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise AuthExpiredError("Access token expired.") from exc
    except JWTError as exc:
        raise AuthInvalidError("Invalid access token.") from exc
    if payload.get("typ") != ACCESS_TOKEN_TYPE:
        raise AuthInvalidError("Invalid access token.")
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub.isdigit():
        raise AuthInvalidError("Invalid access token.")
    payload["user_id"] = int(sub)
    return payload


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: IdentityStore, email: str, password: str) -> User | None:
    """Verify an email/password pair with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User when the password matches, None otherwise. The active
    flag is NOT checked here -- the caller decides how to report a disabled
    account that presented correct credentials.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Refresh token generation and hashing
# ---------------------------------------------------------------------------


def generate_refresh_token() -> str:
    """Return a new opaque refresh token value (URL-safe, 64 chars)."""
    return secrets.token_urlsafe(48)


def hash_refresh_token(raw_token: str, secret_key: str) -> str:
    """Return HMAC-SHA256(secret_key, raw_token) as a hex string.

    Deterministic, so the store can find the row by hash. An attacker who
    obtains the DB cannot present a stored hash as a token without also knowing
    REFRESH_SECRET_KEY.
    """
    return hmac.new(
        secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()

"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Only one auth method exists: Authorization: Bearer <access token>. Refresh
tokens are never accepted here; decode_access_token() rejects any credential
whose typ claim is not "access".

get_identity() resolves the header into an Identity or raises a TaskboardError
(AuthInvalidError, AuthExpiredError, AccountDisabledError). The exception
handler in api/main.py turns those into the error envelope, so no route ever
sees an unauthenticated request.

Layer rule: no imports from api/. The AuthService instance is read from
request.app.state.services, which api/main.py populates in lifespan.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import Identity
from core.errors import AuthInvalidError


def bearer_token(request: Request) -> str | None:
    """Return the raw bearer credential from the Authorization header, if any."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_identity(request: Request) -> Identity:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_identity)): ...
    """
    token = bearer_token(request)
    if token is None:
        raise AuthInvalidError("Authentication required.")
    return request.app.state.services.auth.authenticate(token)

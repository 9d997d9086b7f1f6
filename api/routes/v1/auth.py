"""
api/routes/v1/auth.py -- Credential and session lifecycle endpoints.

Routes:
  POST /api/v1/auth/register         -- create account; returns profile + token pair
  POST /api/v1/auth/login            -- password login; returns profile + token pair
  POST /api/v1/auth/refresh          -- rotate a refresh token (single use)
  POST /api/v1/auth/logout           -- end one session (body token) or all sessions
  POST /api/v1/auth/change-password  -- verify current password; revokes every session
  GET  /api/v1/auth/me               -- current user's profile

Security:
  [H2] register, login and refresh are rate-limited per client IP; the limits
       come from Settings so operators can tune them without a code change.
       @router.post must stay the outer decorator: FastAPI then registers the
       slowapi wrapper, which is where route limits are checked.
  [C1] AuthService.login() goes through authenticate_user(), which equalizes
       timing between unknown email and wrong password.
  [M5] Cache-Control: no-store on every response that carries tokens.
"""

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    AuthResponse,
    ChangePasswordRequest,
    Envelope,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserOut,
)
from api.responses import ok
from auth.dependencies import get_identity
from auth.models import Identity
from core.config import get_settings

# Auth policy:
# - POST /auth/register, /auth/login, /auth/refresh: public, rate-limited
# - everything else: requires a bearer access token (get_identity)
router = APIRouter()


def _auth_payload(user, pair) -> AuthResponse:
    return AuthResponse(user=UserOut.model_validate(user), tokens=TokenResponse.model_validate(pair))


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=Envelope[AuthResponse], status_code=201)
@limiter.limit(lambda: get_settings().register_rate_limit)  # [H2]
def register(request: Request, response: Response, body: RegisterRequest) -> dict:
    user, pair = request.app.state.services.auth.register(body.email, body.password, body.display_name)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return ok(_auth_payload(user, pair), message="Registered.", status_code=201)


@router.post("/auth/login", response_model=Envelope[AuthResponse])
@limiter.limit(lambda: get_settings().login_rate_limit)  # [H2] brute-force mitigation
def login(request: Request, response: Response, body: LoginRequest) -> dict:
    """Exchange email + password for a token pair.

    Unknown email and wrong password produce the same 401 message; a correct
    password on a deactivated account is 403 account_disabled.
    """
    user, pair = request.app.state.services.auth.login(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return ok(_auth_payload(user, pair), message="Logged in.")


@router.post("/auth/refresh", response_model=Envelope[TokenResponse])
@limiter.limit(lambda: get_settings().login_rate_limit)
def refresh(request: Request, response: Response, body: RefreshRequest) -> dict:
    """Rotate a refresh token. The presented token is consumed whether or not
    the caller ever sees the new pair, so a replay always fails."""
    pair = request.app.state.services.auth.refresh(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return ok(TokenResponse.model_validate(pair), message="Token refreshed.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=Envelope[dict])
def logout(
    request: Request,
    body: LogoutRequest | None = None,
    identity: Identity = Depends(get_identity),
) -> dict:
    raw = body.refresh_token if body is not None else None
    revoked = request.app.state.services.auth.logout(identity.user_id, raw)
    return ok({"revoked_sessions": revoked}, message="Logged out.")


@router.post("/auth/change-password", response_model=Envelope[None])
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    identity: Identity = Depends(get_identity),
) -> dict:
    """Change the caller's password. Every refresh token is revoked, so all
    other devices must log in again; the current access token keeps working
    until it expires."""
    request.app.state.services.auth.change_password(
        identity.user_id, body.current_password, body.new_password
    )
    return ok(message="Password changed. Please log in again on other devices.")


@router.get("/auth/me", response_model=Envelope[UserOut])
def me(request: Request, identity: Identity = Depends(get_identity)) -> dict:
    user = request.app.state.services.auth.get_profile(identity.user_id)
    return ok(UserOut.model_validate(user))

"""
api/routes/v1/users.py -- Profile and user directory endpoints.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /api/v1/users/me        -- caller's profile
  PATCH  /api/v1/users/me        -- update display_name / avatar_url
  DELETE /api/v1/users/me        -- deactivate the account and revoke every session
  GET    /api/v1/users?search=   -- find active users by email or display name
  GET    /api/v1/users/{user_id} -- public profile of one user

The directory exists so project admins can look up a user id before adding
them as a member. It never returns password hashes or inactive accounts.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.models import Envelope, ProfileUpdate, UserOut
from api.responses import ok, out_list
from auth.dependencies import get_identity
from auth.models import Identity

router = APIRouter(dependencies=[Depends(get_identity)])


@router.get("/users/me", response_model=Envelope[UserOut])
def get_me(request: Request, identity: Identity = Depends(get_identity)) -> dict:
    return ok(UserOut.model_validate(request.app.state.services.auth.get_profile(identity.user_id)))


@router.patch("/users/me", response_model=Envelope[UserOut])
def update_me(request: Request, body: ProfileUpdate, identity: Identity = Depends(get_identity)) -> dict:
    user = request.app.state.services.auth.update_profile(
        identity.user_id, display_name=body.display_name, avatar_url=body.avatar_url
    )
    return ok(UserOut.model_validate(user), message="Profile updated.")


@router.delete("/users/me", response_model=Envelope[None])
def deactivate_me(request: Request, identity: Identity = Depends(get_identity)) -> dict:
    request.app.state.services.auth.deactivate(identity.user_id)
    return ok(message="Account deactivated.")


@router.get("/users", response_model=Envelope[list[UserOut]])
def search_users(
    request: Request,
    search: str = Query(default="", max_length=100),
    limit: int = Query(default=10, ge=1, le=50),
) -> dict:
    users = request.app.state.services.auth.search_users(search, limit)
    return ok(out_list(users, UserOut))


@router.get("/users/{user_id}", response_model=Envelope[UserOut])
def get_user(request: Request, user_id: int) -> dict:
    return ok(UserOut.model_validate(request.app.state.services.auth.get_profile(user_id)))

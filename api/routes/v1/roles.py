"""
api/routes/v1/roles.py -- Role catalog endpoints.

Routes:
  GET    /api/v1/roles            -- all roles, built-in first (id order)
  POST   /api/v1/roles            -- create a custom role
  GET    /api/v1/roles/{role_id}  -- one role
  PATCH  /api/v1/roles/{role_id}  -- rename / re-permission a custom role
  DELETE /api/v1/roles/{role_id}  -- delete a custom role that no membership uses

Built-in roles (admin, manager, member) answer 409 to PATCH and DELETE.
Unknown resources or actions in a permission matrix answer 422 with the
offending entries listed in `errors`.

The catalog is global, not per project, so any authenticated user may manage
custom roles. Assigning a role inside a project is still gated by
project:manage_members.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import Envelope, RoleCreate, RoleOut, RoleUpdate
from api.responses import ok, out_list
from auth.dependencies import get_identity

router = APIRouter(dependencies=[Depends(get_identity)])


@router.get("/roles", response_model=Envelope[list[RoleOut]])
def list_roles(request: Request) -> dict:
    return ok(out_list(request.app.state.services.catalog.list_roles(), RoleOut))


@router.post("/roles", response_model=Envelope[RoleOut], status_code=201)
def create_role(request: Request, body: RoleCreate) -> dict:
    role = request.app.state.services.catalog.create(body.name, body.permissions)
    return ok(RoleOut.model_validate(role), message="Role created.", status_code=201)


@router.get("/roles/{role_id}", response_model=Envelope[RoleOut])
def get_role(request: Request, role_id: int) -> dict:
    return ok(RoleOut.model_validate(request.app.state.services.catalog.get(role_id)))


@router.patch("/roles/{role_id}", response_model=Envelope[RoleOut])
def update_role(request: Request, role_id: int, body: RoleUpdate) -> dict:
    role = request.app.state.services.catalog.update(role_id, name=body.name, permissions=body.permissions)
    return ok(RoleOut.model_validate(role), message="Role updated.")


@router.delete("/roles/{role_id}", response_model=Envelope[None])
def delete_role(request: Request, role_id: int) -> dict:
    request.app.state.services.catalog.delete(role_id)
    return ok(message="Role deleted.")

"""
api/routes/v1/projects.py -- Project and membership endpoints.

Routes:
  GET    /api/v1/projects                              -- projects the caller owns or belongs to
  POST   /api/v1/projects                              -- create (caller becomes owner)
  GET    /api/v1/projects/{project_id}                 -- detail (read access)
  PATCH  /api/v1/projects/{project_id}                 -- project:update
  DELETE /api/v1/projects/{project_id}                 -- owner only
  GET    /api/v1/projects/{project_id}/members         -- read access
  POST   /api/v1/projects/{project_id}/members         -- project:manage_members
  PATCH  /api/v1/projects/{project_id}/members/{uid}   -- project:manage_members
  DELETE /api/v1/projects/{project_id}/members/{uid}   -- project:manage_members; never the owner

Authorization lives entirely in ProjectService / PermissionGate. Handlers only
translate HTTP to service calls, so a 403 or 404 here is always raised by the
gate and rendered by the TaskboardError handler in api/main.py.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    Envelope,
    MemberAdd,
    MemberOut,
    MemberUpdate,
    ProjectCreate,
    ProjectOut,
    ProjectStatusEnum,
    ProjectUpdate,
)
from api.responses import ok, out_list, page_request, paged
from auth.dependencies import get_identity
from auth.models import Identity
from core.pagination import PageRequest

router = APIRouter()


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@router.get("/projects", response_model=Envelope[list[ProjectOut]])
def list_projects(
    request: Request,
    status: Optional[ProjectStatusEnum] = Query(default=None),
    page: PageRequest = Depends(page_request),
    identity: Identity = Depends(get_identity),
) -> dict:
    result = request.app.state.services.projects.list_projects(
        identity.user_id, page, status.value if status else None
    )
    return paged(result, ProjectOut)


@router.post("/projects", response_model=Envelope[ProjectOut], status_code=201)
def create_project(request: Request, body: ProjectCreate, identity: Identity = Depends(get_identity)) -> dict:
    project = request.app.state.services.projects.create_project(identity.user_id, body.name, body.description)
    return ok(ProjectOut.model_validate(project), message="Project created.", status_code=201)


@router.get("/projects/{project_id}", response_model=Envelope[ProjectOut])
def get_project(request: Request, project_id: int, identity: Identity = Depends(get_identity)) -> dict:
    project = request.app.state.services.projects.get_project(project_id, identity.user_id)
    return ok(ProjectOut.model_validate(project))


@router.patch("/projects/{project_id}", response_model=Envelope[ProjectOut])
def update_project(
    request: Request, project_id: int, body: ProjectUpdate, identity: Identity = Depends(get_identity)
) -> dict:
    project = request.app.state.services.projects.update_project(
        project_id,
        identity.user_id,
        name=body.name,
        description=body.description,
        status=body.status.value if body.status else None,
    )
    return ok(ProjectOut.model_validate(project), message="Project updated.")


@router.delete("/projects/{project_id}", response_model=Envelope[None])
def delete_project(request: Request, project_id: int, identity: Identity = Depends(get_identity)) -> dict:
    request.app.state.services.projects.delete_project(project_id, identity.user_id)
    return ok(message="Project deleted.")


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


@router.get("/projects/{project_id}/members", response_model=Envelope[list[MemberOut]])
def list_members(request: Request, project_id: int, identity: Identity = Depends(get_identity)) -> dict:
    members = request.app.state.services.projects.list_members(project_id, identity.user_id)
    return ok(out_list(members, MemberOut))


@router.post("/projects/{project_id}/members", response_model=Envelope[MemberOut], status_code=201)
def add_member(
    request: Request, project_id: int, body: MemberAdd, identity: Identity = Depends(get_identity)
) -> dict:
    member = request.app.state.services.projects.add_member(project_id, identity.user_id, body.user_id, body.role_id)
    return ok(MemberOut.model_validate(member), message="Member added.", status_code=201)


@router.patch("/projects/{project_id}/members/{user_id}", response_model=Envelope[MemberOut])
def update_member(
    request: Request,
    project_id: int,
    user_id: int,
    body: MemberUpdate,
    identity: Identity = Depends(get_identity),
) -> dict:
    member = request.app.state.services.projects.update_member_role(
        project_id, identity.user_id, user_id, body.role_id
    )
    return ok(MemberOut.model_validate(member), message="Member role updated.")


@router.delete("/projects/{project_id}/members/{user_id}", response_model=Envelope[None])
def remove_member(request: Request, project_id: int, user_id: int, identity: Identity = Depends(get_identity)) -> dict:
    request.app.state.services.projects.remove_member(project_id, identity.user_id, user_id)
    return ok(message="Member removed.")

"""
api/routes/v1/tasks.py -- Task, assignee and label endpoints (project-scoped).

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /projects/{pid}/tasks/stats                      -- counts by status / priority
  GET    /projects/{pid}/tasks/calendar                   -- tasks due in [start_date, end_date]
  GET    /projects/{pid}/tasks                            -- top-level tasks, filterable, paginated
  POST   /projects/{pid}/tasks                            -- task:create
  GET    /projects/{pid}/tasks/{task_id}                  -- detail incl. subtask ids
  PATCH  /projects/{pid}/tasks/{task_id}                  -- task:update
  DELETE /projects/{pid}/tasks/{task_id}                  -- task:delete
  POST   /projects/{pid}/tasks/{task_id}/assignees        -- task:assign
  DELETE /projects/{pid}/tasks/{task_id}/assignees/{uid}  -- task:assign
  GET    /projects/{pid}/labels                           -- read access
  POST   /projects/{pid}/labels                           -- project:update
  PATCH  /projects/{pid}/labels/{label_id}                -- project:update
  DELETE /projects/{pid}/labels/{label_id}                -- project:update

PATCH /tasks/{task_id} forwards only the fields present in the request body
(model_dump(exclude_unset=True)), so "description": null clears the
description while an absent key leaves it untouched.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    AssigneesIn,
    Envelope,
    LabelCreate,
    LabelOut,
    LabelUpdate,
    TaskCreate,
    TaskOut,
    TaskPriorityEnum,
    TaskStatusEnum,
    TaskUpdate,
)
from api.responses import ok, out_list, page_request, paged
from auth.dependencies import get_identity
from auth.models import Identity
from core.pagination import PageRequest
from tasks.models import TaskFilter
from tasks.service import DEFAULT_LABEL_COLOR

router = APIRouter()


# ---------------------------------------------------------------------------
# Reporting views -- registered before /tasks/{task_id}
# ---------------------------------------------------------------------------


@router.get("/projects/{project_id}/tasks/stats", response_model=Envelope[dict])
def task_stats(request: Request, project_id: int, identity: Identity = Depends(get_identity)) -> dict:
    return ok(request.app.state.services.tasks.stats(project_id, identity.user_id))


@router.get("/projects/{project_id}/tasks/calendar", response_model=Envelope[list[TaskOut]])
def task_calendar(
    request: Request,
    project_id: int,
    start_date: date = Query(),
    end_date: date = Query(),
    identity: Identity = Depends(get_identity),
) -> dict:
    tasks = request.app.state.services.tasks.calendar(project_id, identity.user_id, start_date, end_date)
    return ok(out_list(tasks, TaskOut))


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@router.get("/projects/{project_id}/tasks", response_model=Envelope[list[TaskOut]])
def list_tasks(
    request: Request,
    project_id: int,
    status: Optional[TaskStatusEnum] = Query(default=None),
    priority: Optional[TaskPriorityEnum] = Query(default=None),
    assignee_id: Optional[int] = Query(default=None),
    label_id: Optional[int] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=200),
    page: PageRequest = Depends(page_request),
    identity: Identity = Depends(get_identity),
) -> dict:
    filters = TaskFilter(
        status=status.value if status else None,
        priority=priority.value if priority else None,
        assignee_id=assignee_id,
        label_id=label_id,
        search=search or None,
    )
    result = request.app.state.services.tasks.list_tasks(project_id, identity.user_id, page, filters)
    return paged(result, TaskOut)


@router.post("/projects/{project_id}/tasks", response_model=Envelope[TaskOut], status_code=201)
def create_task(
    request: Request, project_id: int, body: TaskCreate, identity: Identity = Depends(get_identity)
) -> dict:
    task = request.app.state.services.tasks.create_task(
        project_id,
        identity.user_id,
        body.title,
        description=body.description,
        status=body.status.value,
        priority=body.priority.value,
        due_date=body.due_date,
        parent_task_id=body.parent_task_id,
        assignee_ids=body.assignee_ids,
        label_ids=body.label_ids,
    )
    return ok(TaskOut.model_validate(task), message="Task created.", status_code=201)


@router.get("/projects/{project_id}/tasks/{task_id}", response_model=Envelope[TaskOut])
def get_task(request: Request, project_id: int, task_id: int, identity: Identity = Depends(get_identity)) -> dict:
    task = request.app.state.services.tasks.get_task(project_id, task_id, identity.user_id)
    return ok(TaskOut.model_validate(task))


@router.patch("/projects/{project_id}/tasks/{task_id}", response_model=Envelope[TaskOut])
def update_task(
    request: Request,
    project_id: int,
    task_id: int,
    body: TaskUpdate,
    identity: Identity = Depends(get_identity),
) -> dict:
    changes = body.model_dump(exclude_unset=True, mode="json")
    task = request.app.state.services.tasks.update_task(project_id, task_id, identity.user_id, **changes)
    return ok(TaskOut.model_validate(task), message="Task updated.")


@router.delete("/projects/{project_id}/tasks/{task_id}", response_model=Envelope[None])
def delete_task(request: Request, project_id: int, task_id: int, identity: Identity = Depends(get_identity)) -> dict:
    request.app.state.services.tasks.delete_task(project_id, task_id, identity.user_id)
    return ok(message="Task deleted.")


# ---------------------------------------------------------------------------
# Assignees
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/tasks/{task_id}/assignees", response_model=Envelope[TaskOut])
def assign_users(
    request: Request,
    project_id: int,
    task_id: int,
    body: AssigneesIn,
    identity: Identity = Depends(get_identity),
) -> dict:
    task = request.app.state.services.tasks.assign(project_id, task_id, identity.user_id, body.user_ids)
    return ok(TaskOut.model_validate(task), message="Users assigned.")


@router.delete("/projects/{project_id}/tasks/{task_id}/assignees/{user_id}", response_model=Envelope[TaskOut])
def unassign_user(
    request: Request,
    project_id: int,
    task_id: int,
    user_id: int,
    identity: Identity = Depends(get_identity),
) -> dict:
    task = request.app.state.services.tasks.unassign(project_id, task_id, identity.user_id, user_id)
    return ok(TaskOut.model_validate(task), message="User unassigned.")


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------


@router.get("/projects/{project_id}/labels", response_model=Envelope[list[LabelOut]])
def list_labels(request: Request, project_id: int, identity: Identity = Depends(get_identity)) -> dict:
    labels = request.app.state.services.tasks.list_labels(project_id, identity.user_id)
    return ok(out_list(labels, LabelOut))


@router.post("/projects/{project_id}/labels", response_model=Envelope[LabelOut], status_code=201)
def create_label(
    request: Request, project_id: int, body: LabelCreate, identity: Identity = Depends(get_identity)
) -> dict:
    label = request.app.state.services.tasks.create_label(
        project_id, identity.user_id, body.name, body.color or DEFAULT_LABEL_COLOR
    )
    return ok(LabelOut.model_validate(label), message="Label created.", status_code=201)


@router.patch("/projects/{project_id}/labels/{label_id}", response_model=Envelope[LabelOut])
def update_label(
    request: Request,
    project_id: int,
    label_id: int,
    body: LabelUpdate,
    identity: Identity = Depends(get_identity),
) -> dict:
    label = request.app.state.services.tasks.update_label(
        project_id, label_id, identity.user_id, name=body.name, color=body.color
    )
    return ok(LabelOut.model_validate(label), message="Label updated.")


@router.delete("/projects/{project_id}/labels/{label_id}", response_model=Envelope[None])
def delete_label(request: Request, project_id: int, label_id: int, identity: Identity = Depends(get_identity)) -> dict:
    request.app.state.services.tasks.delete_label(project_id, label_id, identity.user_id)
    return ok(message="Label deleted.")

"""
api/routes/v1/time_logs.py -- Time tracking endpoints.

Routes:
  GET    /api/v1/tasks/{task_id}/time-logs      -- entries on one task (read access)
  POST   /api/v1/tasks/{task_id}/time-logs      -- log minutes against a task (read access)
  GET    /api/v1/projects/{pid}/time-logs       -- entries across the project, optional date range
  GET    /api/v1/projects/{pid}/time-report     -- totals by user, by task, overall
  GET    /api/v1/time-logs/{log_id}
  PATCH  /api/v1/time-logs/{log_id}             -- author, or task:update
  DELETE /api/v1/time-logs/{log_id}             -- author, or task:delete

Date ranges are inclusive on logged_on. start_date after end_date is 422.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import Envelope, TimeLogCreate, TimeLogOut, TimeLogUpdate
from api.responses import ok, page_request, paged
from auth.dependencies import get_identity
from auth.models import Identity
from core.pagination import PageRequest

router = APIRouter()


@router.get("/tasks/{task_id}/time-logs", response_model=Envelope[list[TimeLogOut]])
def list_task_time_logs(
    request: Request,
    task_id: int,
    page: PageRequest = Depends(page_request),
    identity: Identity = Depends(get_identity),
) -> dict:
    result = request.app.state.services.time_logs.list_for_task(task_id, identity.user_id, page)
    return paged(result, TimeLogOut)


@router.post("/tasks/{task_id}/time-logs", response_model=Envelope[TimeLogOut], status_code=201)
def log_time(request: Request, task_id: int, body: TimeLogCreate, identity: Identity = Depends(get_identity)) -> dict:
    entry = request.app.state.services.time_logs.log_time(
        task_id, identity.user_id, body.duration_minutes, body.logged_on, body.description
    )
    return ok(TimeLogOut.model_validate(entry), message="Time logged.", status_code=201)


@router.get("/projects/{project_id}/time-logs", response_model=Envelope[list[TimeLogOut]])
def list_project_time_logs(
    request: Request,
    project_id: int,
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    page: PageRequest = Depends(page_request),
    identity: Identity = Depends(get_identity),
) -> dict:
    result = request.app.state.services.time_logs.list_for_project(
        project_id, identity.user_id, page, start_date, end_date
    )
    return paged(result, TimeLogOut)


@router.get("/projects/{project_id}/time-report", response_model=Envelope[dict])
def time_report(
    request: Request,
    project_id: int,
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    identity: Identity = Depends(get_identity),
) -> dict:
    report = request.app.state.services.time_logs.project_report(project_id, identity.user_id, start_date, end_date)
    return ok(report)


@router.get("/time-logs/{log_id}", response_model=Envelope[TimeLogOut])
def get_time_log(request: Request, log_id: int, identity: Identity = Depends(get_identity)) -> dict:
    entry = request.app.state.services.time_logs.get_time_log(log_id, identity.user_id)
    return ok(TimeLogOut.model_validate(entry))


@router.patch("/time-logs/{log_id}", response_model=Envelope[TimeLogOut])
def update_time_log(
    request: Request, log_id: int, body: TimeLogUpdate, identity: Identity = Depends(get_identity)
) -> dict:
    entry = request.app.state.services.time_logs.update_time_log(
        log_id, identity.user_id, **body.model_dump(exclude_unset=True)
    )
    return ok(TimeLogOut.model_validate(entry), message="Time log updated.")


@router.delete("/time-logs/{log_id}", response_model=Envelope[None])
def delete_time_log(request: Request, log_id: int, identity: Identity = Depends(get_identity)) -> dict:
    request.app.state.services.time_logs.delete_time_log(log_id, identity.user_id)
    return ok(message="Time log deleted.")

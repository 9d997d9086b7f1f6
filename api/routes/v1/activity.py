"""
api/routes/v1/activity.py -- Read-only views over the audit log.

Routes:
  GET /api/v1/projects/{pid}/activity         -- filterable, paginated, newest first
  GET /api/v1/projects/{pid}/activity/recent  -- last N entries (default 20, max 100)
  GET /api/v1/users/me/activity               -- everything the caller did, across projects

Project views require read access to the project. The log has no write
endpoint: entries are recorded by the services as a side effect of each
mutation.

Date filters are whole UTC days, inclusive at both ends.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from activity.models import ACTIVITY_ACTIONS, ENTITY_TYPES, ActivityFilter
from activity.store import DEFAULT_RECENT_LIMIT, MAX_RECENT_LIMIT
from api.models import ActivityOut, Envelope
from api.responses import ok, out_list, page_request, paged
from auth.dependencies import get_identity
from auth.models import Identity
from core.errors import ValidationError
from core.pagination import PageRequest

router = APIRouter()


@router.get("/projects/{project_id}/activity/recent", response_model=Envelope[list[ActivityOut]])
def recent_activity(
    request: Request,
    project_id: int,
    limit: int = Query(default=DEFAULT_RECENT_LIMIT, ge=1, le=MAX_RECENT_LIMIT),
    identity: Identity = Depends(get_identity),
) -> dict:
    services = request.app.state.services
    services.gate.require_read(project_id, identity.user_id)
    return ok(out_list(services.audit.recent_for_project(project_id, limit), ActivityOut))


@router.get("/projects/{project_id}/activity", response_model=Envelope[list[ActivityOut]])
def project_activity(
    request: Request,
    project_id: int,
    action: Optional[str] = Query(default=None),
    entity_type: Optional[str] = Query(default=None),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    page: PageRequest = Depends(page_request),
    identity: Identity = Depends(get_identity),
) -> dict:
    if action is not None and action not in ACTIVITY_ACTIONS:
        raise ValidationError(f"Unknown activity action '{action}'.", errors=list(ACTIVITY_ACTIONS))
    if entity_type is not None and entity_type not in ENTITY_TYPES:
        raise ValidationError(f"Unknown entity type '{entity_type}'.", errors=list(ENTITY_TYPES))
    services = request.app.state.services
    services.gate.require_read(project_id, identity.user_id)
    filters = ActivityFilter(action=action, entity_type=entity_type, start_date=start_date, end_date=end_date)
    return paged(services.audit.list_for_project(project_id, page, filters), ActivityOut)


@router.get("/users/me/activity", response_model=Envelope[list[ActivityOut]])
def my_activity(
    request: Request,
    page: PageRequest = Depends(page_request),
    identity: Identity = Depends(get_identity),
) -> dict:
    return paged(request.app.state.services.audit.list_for_user(identity.user_id, page), ActivityOut)

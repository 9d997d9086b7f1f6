"""Unit tests for activity/store.py -- the append-only AuditLog.

Covers:
- record_activity() returns the stored entry; details survive as JSON
- unknown action / entity type -> ValidationError; unknown project -> NotFoundError
- list_for_project(): newest first, total + pagination, action / entity / date filters
- recent_for_project(): default 20, clamped to 100
- list_for_user(): only the caller's own actions, across projects, with project names
- entries are removed only with their project
"""

from datetime import datetime, timedelta, timezone

import pytest

from activity.models import ActivityEvent, ActivityFilter
from core.errors import NotFoundError, ValidationError
from core.pagination import PageRequest


def _bulk(services, project_id, user_id, count, action="updated", entity_type="task"):
    for i in range(count):
        services.audit.record_activity(ActivityEvent(project_id, user_id, action, entity_type, i + 1, {"n": i}))


def test_record_returns_entry(services, team):
    entry = services.audit.record_activity(
        ActivityEvent(team.project_id, team.member, "commented", "comment", 5, {"content": "hi", "task_id": 2})
    )
    assert entry.id is not None
    assert entry.created_at
    listed = services.audit.recent_for_project(team.project_id, 1)[0]
    assert listed.id == entry.id
    assert listed.details == {"content": "hi", "task_id": 2}
    assert listed.user_display_name == "Member"


def test_invalid_events_are_rejected(services, team):
    with pytest.raises(ValidationError):
        services.audit.record_activity(ActivityEvent(team.project_id, team.owner, "exploded", "task", 1))
    with pytest.raises(ValidationError):
        services.audit.record_activity(ActivityEvent(team.project_id, team.owner, "created", "spaceship", 1))
    with pytest.raises(NotFoundError):
        services.audit.record_activity(ActivityEvent(9999, team.owner, "created", "task", 1))


def test_project_listing_is_newest_first_and_paginated(services, team):
    baseline = services.audit.list_for_project(team.project_id, PageRequest(1, 10)).total
    _bulk(services, team.project_id, team.owner, 15)

    first = services.audit.list_for_project(team.project_id, PageRequest(page=1, limit=10))
    second = services.audit.list_for_project(team.project_id, PageRequest(page=2, limit=10))
    assert first.total == baseline + 15
    assert len(first.items) == 10
    assert first.meta()["total_pages"] == (baseline + 15 + 9) // 10
    assert first.items[0].entity_id == 15
    ids = [e.id for e in first.items + second.items]
    assert ids == sorted(ids, reverse=True)
    assert not set(e.id for e in first.items) & set(e.id for e in second.items)


def test_project_listing_filters(services, team):
    _bulk(services, team.project_id, team.owner, 3, action="deleted", entity_type="task")
    _bulk(services, team.project_id, team.owner, 2, action="created", entity_type="label")

    deleted = services.audit.list_for_project(team.project_id, PageRequest(), ActivityFilter(action="deleted"))
    assert deleted.total == 3
    labels = services.audit.list_for_project(team.project_id, PageRequest(), ActivityFilter(entity_type="label"))
    assert labels.total == 2
    both = services.audit.list_for_project(
        team.project_id, PageRequest(), ActivityFilter(action="created", entity_type="project")
    )
    assert both.total == 1


def test_date_filters_are_inclusive_whole_days(services, team):
    today = datetime.now(timezone.utc).date()
    everything = services.audit.list_for_project(team.project_id, PageRequest()).total
    assert everything > 0

    same_day = ActivityFilter(start_date=today, end_date=today)
    assert services.audit.list_for_project(team.project_id, PageRequest(), same_day).total == everything

    only_start = ActivityFilter(start_date=today + timedelta(days=1))
    assert services.audit.list_for_project(team.project_id, PageRequest(), only_start).total == 0

    only_end = ActivityFilter(end_date=today - timedelta(days=1))
    assert services.audit.list_for_project(team.project_id, PageRequest(), only_end).total == 0

    with pytest.raises(ValidationError):
        services.audit.list_for_project(
            team.project_id, PageRequest(), ActivityFilter(start_date=today, end_date=today - timedelta(days=1))
        )


def test_recent_defaults_and_clamps(services, team):
    _bulk(services, team.project_id, team.owner, 120)
    assert len(services.audit.recent_for_project(team.project_id)) == 20
    assert len(services.audit.recent_for_project(team.project_id, 500)) == 100
    assert len(services.audit.recent_for_project(team.project_id, 0)) == 1
    newest = services.audit.recent_for_project(team.project_id, 3)
    assert [e.entity_id for e in newest] == [120, 119, 118]


def test_list_for_user_spans_projects(services, team):
    other = services.projects.create_project(team.member, "Gemini")
    services.audit.record_activity(ActivityEvent(team.project_id, team.member, "commented", "comment", 1))

    page = services.audit.list_for_user(team.member, PageRequest())
    assert {e.project_name for e in page.items} == {"Apollo", "Gemini"}
    assert all(e.user_id == team.member for e in page.items)
    assert page.items[0].project_id == team.project_id  # newest first
    assert other.id in {e.project_id for e in page.items}

    # Entries where the member was only the target (assigned by the owner) are not theirs.
    assert all(e.action != "assigned" for e in page.items)


def test_entries_disappear_with_their_project(services, team):
    services.projects.delete_project(team.project_id, team.owner)
    assert services.audit.list_for_project(team.project_id, PageRequest()).total == 0

"""Unit tests for tasks/service.py -- tasks, assignees, labels, stats and calendar.

Covers:
- the end-to-end scenario: owner creates a project and a task, a plain member
  cannot delete it, a manager can, and the log shows deleted/task with the title
- create: validation, parent task in the same project, assignees must have access
- list: top-level only, filters, search, pagination
- update: partial fields, clearing due_date, status -> done logs "completed"
- assign / unassign with audit entries; cross-project task ids are NotFound
- assigning the same user from several threads adds one row and never fails
- labels gated by project:update; stats and calendar
"""

import threading
from datetime import date

import pytest

from activity.models import ActivityFilter
from api.container import build_services
from core.db import create_db_engine
from core.errors import ForbiddenError, NotFoundError, ValidationError
from core.pagination import PageRequest
from tasks.models import TaskFilter


def _log(services, project_id, **filters):
    page = services.audit.list_for_project(project_id, PageRequest(limit=100), ActivityFilter(**filters))
    return page.items


# ---------------------------------------------------------------------------
# Scenario
# ---------------------------------------------------------------------------


def test_member_cannot_delete_but_manager_can(services, register):
    owner, _ = register("owner")
    member, _ = register("member")
    manager, _ = register("manager")
    project = services.projects.create_project(owner.id, "Apollo")
    services.projects.add_member(project.id, owner.id, member.id, services.catalog.get_by_name("member").id)
    services.projects.add_member(project.id, owner.id, manager.id, services.catalog.get_by_name("manager").id)
    task = services.tasks.create_task(project.id, owner.id, "Build the rocket")

    with pytest.raises(ForbiddenError):
        services.tasks.delete_task(project.id, task.id, member.id)
    assert services.tasks.get_task(project.id, task.id, member.id).title == "Build the rocket"

    services.tasks.delete_task(project.id, task.id, manager.id)
    with pytest.raises(NotFoundError):
        services.tasks.get_task(project.id, task.id, owner.id)

    deleted = _log(services, project.id, action="deleted", entity_type="task")
    assert len(deleted) == 1
    assert deleted[0].entity_id == task.id
    assert deleted[0].user_id == manager.id
    assert deleted[0].details == {"title": "Build the rocket"}


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def test_create_task_with_assignees_and_labels(services, team):
    label = services.tasks.create_label(team.project_id, team.owner, "backend", "#FF0000")
    task = services.tasks.create_task(
        team.project_id,
        team.manager,
        "  Wire the API ",
        priority="high",
        due_date="2030-01-15",
        assignee_ids=[team.member],
        label_ids=[label.id],
    )
    assert task.title == "Wire the API"
    assert task.created_by == team.manager
    assert task.due_date == "2030-01-15"
    assert task.assignee_ids == [team.member]
    assert task.label_ids == [label.id]
    actions = [e.action for e in _log(services, team.project_id, entity_type="task")]
    assert sorted(actions) == ["assigned", "created"]


def test_create_task_validation(services, team):
    with pytest.raises(ValidationError):
        services.tasks.create_task(team.project_id, team.owner, "   ")
    with pytest.raises(ValidationError):
        services.tasks.create_task(team.project_id, team.owner, "x", status="blocked")
    with pytest.raises(ValidationError):
        services.tasks.create_task(team.project_id, team.owner, "x", due_date="next tuesday")
    with pytest.raises(ValidationError):
        services.tasks.create_task(team.project_id, team.owner, "x", assignee_ids=[team.outsider])
    with pytest.raises(ValidationError):
        services.tasks.create_task(team.project_id, team.owner, "x", label_ids=[999])
    with pytest.raises(ForbiddenError):
        services.tasks.create_task(team.project_id, team.outsider, "x")


def test_member_cannot_assign_on_create(services, team):
    """Members hold task:create but not task:assign."""
    services.tasks.create_task(team.project_id, team.member, "Mine")
    with pytest.raises(ForbiddenError):
        services.tasks.create_task(team.project_id, team.member, "Theirs", assignee_ids=[team.manager])


def test_subtasks(services, team):
    parent = services.tasks.create_task(team.project_id, team.owner, "Parent")
    child = services.tasks.create_task(team.project_id, team.owner, "Child", parent_task_id=parent.id)
    assert services.tasks.get_task(team.project_id, parent.id, team.owner).subtask_ids == [child.id]

    listed = services.tasks.list_tasks(team.project_id, team.owner, PageRequest())
    assert [t.id for t in listed.items] == [parent.id]

    other = services.projects.create_project(team.owner, "Elsewhere")
    with pytest.raises(NotFoundError):
        services.tasks.create_task(other.id, team.owner, "Orphan", parent_task_id=parent.id)


# ---------------------------------------------------------------------------
# List / get
# ---------------------------------------------------------------------------


def test_list_filters_and_search(services, team):
    bug = services.tasks.create_task(team.project_id, team.owner, "Fix login bug", priority="urgent")
    services.tasks.create_task(team.project_id, team.owner, "Write docs", description="Explain the LOGIN flow")
    services.tasks.create_task(team.project_id, team.owner, "Refactor", status="in_progress")
    services.tasks.assign(team.project_id, bug.id, team.owner, [team.member])

    def ids(**kw):
        return {t.title for t in services.tasks.list_tasks(team.project_id, team.member, PageRequest(), TaskFilter(**kw)).items}

    assert ids(priority="urgent") == {"Fix login bug"}
    assert ids(status="in_progress") == {"Refactor"}
    assert ids(assignee_id=team.member) == {"Fix login bug"}
    assert ids(search="login") == {"Fix login bug", "Write docs"}
    with pytest.raises(ValidationError):
        ids(status="nope")

    page = services.tasks.list_tasks(team.project_id, team.member, PageRequest(page=2, limit=2))
    assert page.total == 3
    assert len(page.items) == 1


def test_task_from_another_project_is_not_found(services, team):
    other = services.projects.create_project(team.outsider, "Secret")
    secret = services.tasks.create_task(other.id, team.outsider, "Hidden")
    with pytest.raises(NotFoundError):
        services.tasks.get_task(team.project_id, secret.id, team.owner)
    with pytest.raises(ForbiddenError):
        services.tasks.get_task(other.id, secret.id, team.owner)


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


def test_partial_update_and_clear(services, team):
    task = services.tasks.create_task(team.project_id, team.owner, "Draft", description="d", due_date=date(2030, 1, 1))
    updated = services.tasks.update_task(team.project_id, task.id, team.member, title="Final", due_date=None)
    assert updated.title == "Final"
    assert updated.description == "d"
    assert updated.due_date is None
    with pytest.raises(ValidationError):
        services.tasks.update_task(team.project_id, task.id, team.owner, colour="red")


def test_completing_task_logs_completed_once(services, team):
    task = services.tasks.create_task(team.project_id, team.owner, "Ship it")
    services.tasks.update_task(team.project_id, task.id, team.member, status="done")
    services.tasks.update_task(team.project_id, task.id, team.member, status="done")
    completed = _log(services, team.project_id, action="completed", entity_type="task")
    assert [e.entity_id for e in completed] == [task.id]


def test_update_assignees_requires_assign(services, team):
    task = services.tasks.create_task(team.project_id, team.owner, "Pair up")
    with pytest.raises(ForbiddenError):
        services.tasks.update_task(team.project_id, task.id, team.member, assignee_ids=[team.member])
    updated = services.tasks.update_task(team.project_id, task.id, team.manager, assignee_ids=[team.member, team.admin])
    assert sorted(updated.assignee_ids) == sorted([team.member, team.admin])


# ---------------------------------------------------------------------------
# Assignees
# ---------------------------------------------------------------------------


def test_assign_and_unassign(services, team):
    task = services.tasks.create_task(team.project_id, team.owner, "Crew")
    services.tasks.assign(team.project_id, task.id, team.manager, [team.member])
    again = services.tasks.assign(team.project_id, task.id, team.manager, [team.member, team.admin])
    assert sorted(again.assignee_ids) == sorted([team.member, team.admin])

    after = services.tasks.unassign(team.project_id, task.id, team.manager, team.member)
    assert after.assignee_ids == [team.admin]
    with pytest.raises(NotFoundError):
        services.tasks.unassign(team.project_id, task.id, team.manager, team.member)
    with pytest.raises(ForbiddenError):
        services.tasks.assign(team.project_id, task.id, team.member, [team.member])

    actions = [e.action for e in _log(services, team.project_id, entity_type="task")]
    assert actions.count("assigned") == 2
    assert actions.count("unassigned") == 1


def test_concurrent_assign_adds_one_row(tmp_path, settings):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'assign.db'}")
    services = build_services(engine, settings)
    owner = services.auth.register("owner@example.com", "correct-horse-9", "Owner")[0].id
    project = services.projects.create_project(owner, "Apollo")
    task = services.tasks.create_task(project.id, owner, "Crew")
    barrier = threading.Barrier(4)
    added, failures = [], []

    def assign():
        barrier.wait()
        try:
            added.append(services.tasks.store.add_assignees(task.id, [owner, owner]))
        except Exception as exc:  # surfaced through the assertion below
            failures.append(exc)

    threads = [threading.Thread(target=assign) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert failures == []
    assert sorted(added) == [[], [], [], [owner]]
    assert services.tasks.get_task(project.id, task.id, owner).assignee_ids == [owner]
    assert services.tasks.store.add_assignees(task.id, [owner]) == []
    engine.dispose()


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------


def test_labels(services, team):
    label = services.tasks.create_label(team.project_id, team.manager, "bug")
    assert label.color == "#6b7280"
    with pytest.raises(ForbiddenError):
        services.tasks.create_label(team.project_id, team.member, "feature")
    with pytest.raises(ValidationError):
        services.tasks.create_label(team.project_id, team.owner, "feature", "red")

    updated = services.tasks.update_label(team.project_id, label.id, team.owner, color="#00AA00")
    assert updated.color == "#00aa00"
    assert [lbl.name for lbl in services.tasks.list_labels(team.project_id, team.member)] == ["bug"]

    task = services.tasks.create_task(team.project_id, team.owner, "Labelled", label_ids=[label.id])
    services.tasks.delete_label(team.project_id, label.id, team.owner)
    assert services.tasks.get_task(team.project_id, task.id, team.owner).label_ids == []
    label_actions = [e.action for e in _log(services, team.project_id, entity_type="label")]
    assert sorted(label_actions) == ["created", "deleted", "updated"]


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def test_stats(services, team):
    services.tasks.create_task(team.project_id, team.owner, "a")
    services.tasks.create_task(team.project_id, team.owner, "b", status="done", priority="high")
    stats = services.tasks.stats(team.project_id, team.member)
    assert stats["total"] == 2
    assert stats["by_status"] == {"todo": 1, "in_progress": 0, "review": 0, "done": 1}
    assert stats["by_priority"]["high"] == 1
    with pytest.raises(ForbiddenError):
        services.tasks.stats(team.project_id, team.outsider)


def test_calendar(services, team):
    services.tasks.create_task(team.project_id, team.owner, "early", due_date="2030-01-01")
    services.tasks.create_task(team.project_id, team.owner, "mid", due_date="2030-01-15")
    services.tasks.create_task(team.project_id, team.owner, "late", due_date="2030-02-01")
    services.tasks.create_task(team.project_id, team.owner, "undated")
    due = services.tasks.calendar(team.project_id, team.member, date(2030, 1, 1), date(2030, 1, 31))
    assert [t.title for t in due] == ["early", "mid"]
    with pytest.raises(ValidationError):
        services.tasks.calendar(team.project_id, team.member, date(2030, 2, 1), date(2030, 1, 1))


def test_search_treats_wildcards_literally(services, team):
    services.tasks.create_task(team.project_id, team.owner, "Reach 100% coverage")
    services.tasks.create_task(team.project_id, team.owner, "Rename user_id column")
    services.tasks.create_task(team.project_id, team.owner, "Plain task")

    def titles(term):
        page = services.tasks.list_tasks(team.project_id, team.owner, PageRequest(), TaskFilter(search=term))
        return {t.title for t in page.items}

    assert titles("%") == {"Reach 100% coverage"}
    assert titles("_") == {"Rename user_id column"}
    assert titles("r_i") == {"Rename user_id column"}
    assert titles("a_n") == set()

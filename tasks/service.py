"""
tasks/service.py -- Task, assignee, and label operations.

Permission mapping (checked through PermissionGate):
  list / get / stats / calendar        project read access
  create task                          task:create   (+ task:assign when assignees are given)
  update task                          task:update   (+ task:assign when assignee_ids change)
  delete task                          task:delete
  assign / unassign                    task:assign
  create / update / delete label       project:update
  list labels                          project read access

Audit entries (entity_type="task" unless noted):
  created, updated, deleted; completed when status moves to "done";
  assigned / unassigned for assignee changes; created/updated/deleted with
  entity_type="label" for labels.

Lookups always verify the task belongs to the project in the URL, so a task
id from another project is NotFoundError, never a cross-project read.
"""

from __future__ import annotations

import logging
import re

from activity.models import ActivityEvent
from activity.store import AuditLog
from core.db import to_day
from core.errors import NotFoundError, ValidationError
from core.pagination import Page, PageRequest
from rbac.gate import PermissionGate
from tasks.models import TASK_PRIORITIES, TASK_STATUSES, Label, Task, TaskFilter
from tasks.store import TaskStore

logger = logging.getLogger("taskboard.tasks")

MAX_TITLE_LENGTH = 200
MAX_LABEL_NAME_LENGTH = 50
DEFAULT_LABEL_COLOR = "#6b7280"
_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
_UPDATABLE = {"title", "description", "status", "priority", "due_date", "assignee_ids", "label_ids"}


def _clean_title(title: str) -> str:
    cleaned = title.strip()
    if not cleaned:
        raise ValidationError("Task title must not be empty.")
    if len(cleaned) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Task title must be at most {MAX_TITLE_LENGTH} characters.")
    return cleaned


def _check_choice(value: str, choices: tuple[str, ...], what: str) -> str:
    if value not in choices:
        raise ValidationError(f"Unknown {what} '{value}'.", errors=list(choices))
    return value


def _check_color(color: str) -> str:
    if not _COLOR_RE.match(color):
        raise ValidationError("Label color must be a hex value like #1a2b3c.")
    return color.lower()


class TaskService:
    def __init__(self, store: TaskStore, gate: PermissionGate, audit: AuditLog) -> None:
        self.store = store
        self.gate = gate
        self.audit = audit

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(
        self,
        project_id: int,
        user_id: int,
        title: str,
        description: str | None = None,
        status: str = "todo",
        priority: str = "medium",
        due_date=None,
        parent_task_id: int | None = None,
        assignee_ids: list[int] | None = None,
        label_ids: list[int] | None = None,
    ) -> Task:
        self.gate.require(project_id, user_id, "task", "create")
        if assignee_ids:
            self.gate.require(project_id, user_id, "task", "assign")
            self._check_assignees(project_id, assignee_ids)
        if label_ids:
            self._check_labels(project_id, label_ids)
        if parent_task_id is not None:
            self._task_in_project(project_id, parent_task_id, missing="Parent task not found.")

        task_id = self.store.create_task(
            Task(
                project_id=project_id,
                title=_clean_title(title),
                description=description,
                status=_check_choice(status, TASK_STATUSES, "task status"),
                priority=_check_choice(priority, TASK_PRIORITIES, "task priority"),
                due_date=to_day(due_date),
                parent_task_id=parent_task_id,
                created_by=user_id,
            )
        )
        if label_ids:
            self.store.replace_labels(task_id, label_ids)
        self.audit.record_activity(
            ActivityEvent(project_id, user_id, "created", "task", task_id, {"title": title.strip()})
        )
        if assignee_ids:
            self.store.add_assignees(task_id, assignee_ids)
            self.audit.record_activity(
                ActivityEvent(project_id, user_id, "assigned", "task", task_id, {"assignee_ids": assignee_ids})
            )
        return self.store.get_task(task_id)

    def list_tasks(
        self, project_id: int, user_id: int, page: PageRequest, filters: TaskFilter | None = None
    ) -> Page[Task]:
        self.gate.require_read(project_id, user_id)
        if filters is not None:
            if filters.status is not None:
                _check_choice(filters.status, TASK_STATUSES, "task status")
            if filters.priority is not None:
                _check_choice(filters.priority, TASK_PRIORITIES, "task priority")
        return self.store.list_tasks(project_id, page, filters)

    def get_task(self, project_id: int, task_id: int, user_id: int) -> Task:
        self.gate.require_read(project_id, user_id)
        return self._task_in_project(project_id, task_id)

    def update_task(self, project_id: int, task_id: int, user_id: int, **changes) -> Task:
        """Apply a partial update. Keys absent from changes are left untouched.

        Accepted keys: title, description, status, priority, due_date,
        assignee_ids, label_ids. description / due_date may be None to clear.
        """
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValidationError(f"Unknown task fields: {sorted(unknown)!r}")
        self.gate.require_read(project_id, user_id)
        task = self._task_in_project(project_id, task_id)
        self.gate.require(project_id, user_id, "task", "update")

        assignee_ids = changes.pop("assignee_ids", None)
        label_ids = changes.pop("label_ids", None)
        if assignee_ids is not None:
            self.gate.require(project_id, user_id, "task", "assign")
            self._check_assignees(project_id, assignee_ids)
        if label_ids is not None:
            self._check_labels(project_id, label_ids)

        fields: dict = {}
        if "title" in changes:
            fields["title"] = _clean_title(changes["title"] or "")
        if "description" in changes:
            fields["description"] = changes["description"]
        if "status" in changes:
            fields["status"] = _check_choice(changes["status"], TASK_STATUSES, "task status")
        if "priority" in changes:
            fields["priority"] = _check_choice(changes["priority"], TASK_PRIORITIES, "task priority")
        if "due_date" in changes:
            fields["due_date"] = to_day(changes["due_date"])

        if fields:
            self.store.update_task(task_id, **fields)
        if label_ids is not None:
            self.store.replace_labels(task_id, label_ids)
        if fields or label_ids is not None:
            details = dict(fields)
            if label_ids is not None:
                details["label_ids"] = label_ids
            self.audit.record_activity(ActivityEvent(project_id, user_id, "updated", "task", task_id, details))
        if fields.get("status") == "done" and task.status != "done":
            self.audit.record_activity(
                ActivityEvent(project_id, user_id, "completed", "task", task_id, {"title": task.title})
            )
        if assignee_ids is not None:
            self.store.replace_assignees(task_id, assignee_ids)
            self.audit.record_activity(
                ActivityEvent(project_id, user_id, "assigned", "task", task_id, {"assignee_ids": assignee_ids})
            )
        return self.store.get_task(task_id)

    def delete_task(self, project_id: int, task_id: int, user_id: int) -> None:
        self.gate.require_read(project_id, user_id)
        task = self._task_in_project(project_id, task_id)
        self.gate.require(project_id, user_id, "task", "delete")
        self.store.delete_task(task_id)
        self.audit.record_activity(
            ActivityEvent(project_id, user_id, "deleted", "task", task_id, {"title": task.title})
        )

    # ------------------------------------------------------------------
    # Assignees
    # ------------------------------------------------------------------

    def assign(self, project_id: int, task_id: int, user_id: int, assignee_ids: list[int]) -> Task:
        if not assignee_ids:
            raise ValidationError("At least one assignee is required.")
        self.gate.require_read(project_id, user_id)
        self._task_in_project(project_id, task_id)
        self.gate.require(project_id, user_id, "task", "assign")
        self._check_assignees(project_id, assignee_ids)
        added = self.store.add_assignees(task_id, assignee_ids)
        if added:
            self.audit.record_activity(
                ActivityEvent(project_id, user_id, "assigned", "task", task_id, {"assignee_ids": added})
            )
        return self.store.get_task(task_id)

    def unassign(self, project_id: int, task_id: int, user_id: int, assignee_id: int) -> Task:
        self.gate.require_read(project_id, user_id)
        self._task_in_project(project_id, task_id)
        self.gate.require(project_id, user_id, "task", "assign")
        if not self.store.remove_assignee(task_id, assignee_id):
            raise NotFoundError("User is not assigned to this task.")
        self.audit.record_activity(
            ActivityEvent(project_id, user_id, "unassigned", "task", task_id, {"assignee_id": assignee_id})
        )
        return self.store.get_task(task_id)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def stats(self, project_id: int, user_id: int) -> dict:
        self.gate.require_read(project_id, user_id)
        by_status, by_priority = self.store.status_counts(project_id)
        return {
            "by_status": {s: by_status.get(s, 0) for s in TASK_STATUSES},
            "by_priority": {p: by_priority.get(p, 0) for p in TASK_PRIORITIES},
            "total": sum(by_status.values()),
        }

    def calendar(self, project_id: int, user_id: int, start, end) -> list[Task]:
        self.gate.require_read(project_id, user_id)
        start_s, end_s = to_day(start), to_day(end)
        if start_s is None or end_s is None:
            raise ValidationError("start_date and end_date are both required.")
        if start_s > end_s:
            raise ValidationError("start_date must not be after end_date.")
        return self.store.tasks_due_between(project_id, start_s, end_s)

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    def create_label(self, project_id: int, user_id: int, name: str, color: str = DEFAULT_LABEL_COLOR) -> Label:
        self.gate.require(project_id, user_id, "project", "update")
        label_id = self.store.create_label(
            Label(project_id=project_id, name=self._clean_label_name(name), color=_check_color(color))
        )
        self.audit.record_activity(
            ActivityEvent(project_id, user_id, "created", "label", label_id, {"name": name.strip()})
        )
        return self.store.get_label(label_id)

    def list_labels(self, project_id: int, user_id: int) -> list[Label]:
        self.gate.require_read(project_id, user_id)
        return self.store.list_labels(project_id)

    def update_label(
        self, project_id: int, label_id: int, user_id: int, name: str | None = None, color: str | None = None
    ) -> Label:
        self.gate.require_read(project_id, user_id)
        self._label_in_project(project_id, label_id)
        self.gate.require(project_id, user_id, "project", "update")
        fields: dict = {}
        if name is not None:
            fields["name"] = self._clean_label_name(name)
        if color is not None:
            fields["color"] = _check_color(color)
        if fields:
            self.store.update_label(label_id, **fields)
            self.audit.record_activity(ActivityEvent(project_id, user_id, "updated", "label", label_id, fields))
        return self.store.get_label(label_id)

    def delete_label(self, project_id: int, label_id: int, user_id: int) -> None:
        self.gate.require_read(project_id, user_id)
        label = self._label_in_project(project_id, label_id)
        self.gate.require(project_id, user_id, "project", "update")
        self.store.delete_label(label_id)
        self.audit.record_activity(
            ActivityEvent(project_id, user_id, "deleted", "label", label_id, {"name": label.name})
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _task_in_project(self, project_id: int, task_id: int, missing: str = "Task not found.") -> Task:
        task = self.store.get_task(task_id)
        if task is None or task.project_id != project_id:
            raise NotFoundError(missing)
        return task

    def _label_in_project(self, project_id: int, label_id: int) -> Label:
        label = self.store.get_label(label_id)
        if label is None or label.project_id != project_id:
            raise NotFoundError("Label not found.")
        return label

    def _check_assignees(self, project_id: int, assignee_ids: list[int]) -> None:
        outsiders = [uid for uid in assignee_ids if not self.gate.can_read(project_id, uid)]
        if outsiders:
            raise ValidationError("Assignees must be members of the project.", errors={"user_ids": outsiders})

    def _check_labels(self, project_id: int, label_ids: list[int]) -> None:
        known = self.store.label_ids_in_project(project_id, label_ids)
        unknown = [lid for lid in label_ids if lid not in known]
        if unknown:
            raise ValidationError("Labels must belong to the project.", errors={"label_ids": unknown})

    @staticmethod
    def _clean_label_name(name: str) -> str:
        cleaned = name.strip()
        if not cleaned:
            raise ValidationError("Label name must not be empty.")
        if len(cleaned) > MAX_LABEL_NAME_LENGTH:
            raise ValidationError(f"Label name must be at most {MAX_LABEL_NAME_LENGTH} characters.")
        return cleaned

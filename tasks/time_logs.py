"""
tasks/time_logs.py -- Time tracking against tasks.

Logging time needs project read access. Edit/delete follow the same author
override as comments (task:delete for everyone else). The
project report sums minutes by user, by task, and overall for an optional
inclusive date range on logged_on.
"""

from __future__ import annotations

from activity.models import ActivityEvent
from activity.store import AuditLog
from core.db import to_day
from core.errors import NotFoundError, ValidationError
from core.pagination import Page, PageRequest
from rbac.gate import PermissionGate
from tasks.models import Task, TimeLog
from tasks.store import TaskStore, TimeLogStore

MAX_MINUTES_PER_ENTRY = 24 * 60


def _check_minutes(minutes: int) -> int:
    if not 1 <= minutes <= MAX_MINUTES_PER_ENTRY:
        raise ValidationError(f"duration_minutes must be between 1 and {MAX_MINUTES_PER_ENTRY}.")
    return minutes


def _date_range(start, end) -> tuple[str | None, str | None]:
    start_s, end_s = to_day(start), to_day(end)
    if start_s and end_s and start_s > end_s:
        raise ValidationError("start_date must not be after end_date.")
    return start_s, end_s


class TimeLogService:
    def __init__(self, store: TimeLogStore, tasks: TaskStore, gate: PermissionGate, audit: AuditLog) -> None:
        self.store = store
        self.tasks = tasks
        self.gate = gate
        self.audit = audit

    def log_time(
        self, task_id: int, user_id: int, duration_minutes: int, logged_on, description: str | None = None
    ) -> TimeLog:
        task = self._task(task_id)
        self.gate.require_read(task.project_id, user_id)
        log_id = self.store.create_time_log(
            TimeLog(
                task_id=task_id,
                user_id=user_id,
                duration_minutes=_check_minutes(duration_minutes),
                logged_on=to_day(logged_on),
                description=description,
            )
        )
        self.audit.record_activity(
            ActivityEvent(
                task.project_id,
                user_id,
                "created",
                "time_log",
                log_id,
                {"task_id": task_id, "duration_minutes": duration_minutes},
            )
        )
        return self.store.get_time_log(log_id)

    def list_for_task(self, task_id: int, user_id: int, page: PageRequest) -> Page[TimeLog]:
        task = self._task(task_id)
        self.gate.require_read(task.project_id, user_id)
        return self.store.list_for_task(task_id, page)

    def list_for_project(
        self, project_id: int, user_id: int, page: PageRequest, start=None, end=None
    ) -> Page[TimeLog]:
        self.gate.require_read(project_id, user_id)
        start_s, end_s = _date_range(start, end)
        return self.store.list_for_project(project_id, page, start_s, end_s)

    def get_time_log(self, log_id: int, user_id: int) -> TimeLog:
        log = self._log(log_id)
        self.gate.require_read(log.project_id, user_id)
        return log

    def update_time_log(self, log_id: int, user_id: int, **changes) -> TimeLog:
        unknown = set(changes) - {"duration_minutes", "description", "logged_on"}
        if unknown:
            raise ValidationError(f"Unknown time log fields: {sorted(unknown)!r}")
        log = self._log(log_id)
        self.gate.require_author_or(log.project_id, user_id, log.user_id, "task", "delete")
        fields: dict = {}
        if "duration_minutes" in changes:
            fields["duration_minutes"] = _check_minutes(changes["duration_minutes"])
        if "description" in changes:
            fields["description"] = changes["description"]
        if changes.get("logged_on") is not None:
            fields["logged_on"] = to_day(changes["logged_on"])
        if fields:
            self.store.update_time_log(log_id, **fields)
            self.audit.record_activity(
                ActivityEvent(log.project_id, user_id, "updated", "time_log", log_id, {"task_id": log.task_id, **fields})
            )
        return self.store.get_time_log(log_id)

    def delete_time_log(self, log_id: int, user_id: int) -> None:
        log = self._log(log_id)
        self.gate.require_author_or(log.project_id, user_id, log.user_id, "task", "delete")
        self.store.delete_time_log(log_id)
        self.audit.record_activity(
            ActivityEvent(log.project_id, user_id, "deleted", "time_log", log_id, {"task_id": log.task_id})
        )

    def project_report(self, project_id: int, user_id: int, start=None, end=None) -> dict:
        self.gate.require_read(project_id, user_id)
        start_s, end_s = _date_range(start, end)
        report = self.store.project_report(project_id, start_s, end_s)
        report["start_date"] = start_s
        report["end_date"] = end_s
        return report

    def _task(self, task_id: int) -> Task:
        task = self.tasks.get_task(task_id)
        if task is None:
            raise NotFoundError("Task not found.")
        return task

    def _log(self, log_id: int) -> TimeLog:
        log = self.store.get_time_log(log_id)
        if log is None:
            raise NotFoundError("Time log not found.")
        return log

"""
tasks/models.py -- Domain dataclasses for tasks and their nested entities.

Dates without a time component (due_date, logged_on) are ISO "YYYY-MM-DD"
strings; timestamps are full ISO 8601 UTC strings like everywhere else.
"""

from __future__ import annotations

from dataclasses import dataclass, field

TASK_STATUSES = ("todo", "in_progress", "review", "done")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")


@dataclass
class Task:
    project_id: int
    title: str
    created_by: int
    description: str | None = None
    status: str = "todo"
    priority: str = "medium"
    due_date: str | None = None
    parent_task_id: int | None = None
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    assignee_ids: list[int] = field(default_factory=list)
    label_ids: list[int] = field(default_factory=list)
    subtask_ids: list[int] = field(default_factory=list)  # filled by single-task lookups only


@dataclass(frozen=True)
class TaskFilter:
    status: str | None = None
    priority: str | None = None
    assignee_id: int | None = None
    label_id: int | None = None
    search: str | None = None


@dataclass
class Label:
    project_id: int
    name: str
    color: str
    id: int | None = None


@dataclass
class Comment:
    task_id: int
    user_id: int
    content: str
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    user_display_name: str | None = None


@dataclass
class TimeLog:
    task_id: int
    user_id: int
    duration_minutes: int
    logged_on: str  # YYYY-MM-DD
    description: str | None = None
    id: int | None = None
    created_at: str | None = None
    project_id: int | None = None  # joined from tasks on reads
    task_title: str | None = None
    user_display_name: str | None = None

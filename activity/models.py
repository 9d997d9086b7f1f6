"""
activity/models.py -- Domain dataclasses for the audit ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

ACTIVITY_ACTIONS = (
    "created",
    "updated",
    "deleted",
    "assigned",
    "unassigned",
    "completed",
    "commented",
    "uploaded",
)

ENTITY_TYPES = ("project", "task", "comment", "file", "member", "time_log", "label")


@dataclass(frozen=True)
class ActivityEvent:
    """What a resource service reports after a successful mutation."""

    project_id: int
    user_id: int
    action: str
    entity_type: str
    entity_id: int
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ActivityLogEntry:
    """Immutable ledger row. Records are only ever inserted.

    user_display_name and project_name are filled by read queries that join
    the users and projects tables.
    """

    project_id: int
    user_id: int
    action: str
    entity_type: str
    entity_id: int
    details: dict[str, Any] = field(default_factory=dict)
    id: int | None = None
    created_at: str | None = None
    user_display_name: str | None = None
    project_name: str | None = None


@dataclass(frozen=True)
class ActivityFilter:
    """Optional filters for a project's ledger. Both date bounds are inclusive whole days (UTC)."""

    action: str | None = None
    entity_type: str | None = None
    start_date: date | None = None
    end_date: date | None = None

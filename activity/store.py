"""
activity/store.py -- AuditLog: append-only activity ledger on SQLAlchemy Core.

Write path:
  record_activity() inserts exactly one row and nothing else. It runs after
  the triggering mutation has committed, in its own transaction. A crash
  between the two leaves the mutation durable and the ledger missing that
  entry; this ordering is accepted, not accidental.

  A well-formed event never fails. A malformed one is an application error
  and is raised, not swallowed:
    unknown action / entity type  -> ValidationError
    unknown project or user id    -> NotFoundError (foreign-key violation)

Read path:
  Every query orders newest-first by created_at, with id DESC as the tie
  breaker for entries written within the same microsecond.

There is no update or delete method. Entries disappear only when their
project is deleted (ON DELETE CASCADE).
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta

from sqlalchemy import Column, ForeignKey, Integer, String, Table, Text, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from activity.models import ACTIVITY_ACTIONS, ENTITY_TYPES, ActivityEvent, ActivityFilter, ActivityLogEntry
from auth.store import users
from core.db import metadata, now_iso
from core.errors import NotFoundError, ValidationError
from core.pagination import Page, PageRequest
from projects.store import projects

logger = logging.getLogger("taskboard.activity")

DEFAULT_RECENT_LIMIT = 20
MAX_RECENT_LIMIT = 100

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

activity_logs = Table(
    "activity_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey(projects.c.id, ondelete="CASCADE"), nullable=False),
    Column("user_id", Integer, ForeignKey(users.c.id, ondelete="CASCADE"), nullable=False, index=True),
    Column("action", String(20), nullable=False),
    Column("entity_type", String(20), nullable=False),
    Column("entity_id", Integer, nullable=False),
    Column("details", Text, nullable=False),  # JSON object
    Column("created_at", String(40), nullable=False, index=True),
)


def _day_start(day) -> str:
    return f"{day.isoformat()}T00:00:00.000000+00:00"


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuditLog:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    def record_activity(self, event: ActivityEvent) -> ActivityLogEntry:
        """Append one entry and return it."""
        if event.action not in ACTIVITY_ACTIONS:
            raise ValidationError(f"Unknown activity action '{event.action}'.")
        if event.entity_type not in ENTITY_TYPES:
            raise ValidationError(f"Unknown entity type '{event.entity_type}'.")
        stamp = now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    activity_logs.insert().values(
                        project_id=event.project_id,
                        user_id=event.user_id,
                        action=event.action,
                        entity_type=event.entity_type,
                        entity_id=event.entity_id,
                        details=json.dumps(event.details, default=str),
                        created_at=stamp,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise NotFoundError("Activity refers to an unknown project or user.") from exc
        logger.debug(
            "activity project=%d user=%d %s %s:%d",
            event.project_id,
            event.user_id,
            event.action,
            event.entity_type,
            event.entity_id,
        )
        return ActivityLogEntry(
            id=result.inserted_primary_key[0],
            project_id=event.project_id,
            user_id=event.user_id,
            action=event.action,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            details=dict(event.details),
            created_at=stamp,
        )

    def list_for_project(
        self, project_id: int, page: PageRequest, filters: ActivityFilter | None = None
    ) -> Page[ActivityLogEntry]:
        condition = activity_logs.c.project_id == project_id
        if filters is not None:
            if filters.action is not None:
                condition = condition & (activity_logs.c.action == filters.action)
            if filters.entity_type is not None:
                condition = condition & (activity_logs.c.entity_type == filters.entity_type)
            if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
                raise ValidationError("start_date must not be after end_date.")
            if filters.start_date is not None:
                condition = condition & (activity_logs.c.created_at >= _day_start(filters.start_date))
            if filters.end_date is not None:
                condition = condition & (activity_logs.c.created_at < _day_start(filters.end_date + timedelta(days=1)))

        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(activity_logs).where(condition)).scalar() or 0
            rows = conn.execute(
                self._with_actor()
                .where(condition)
                .order_by(activity_logs.c.created_at.desc(), activity_logs.c.id.desc())
                .limit(page.limit)
                .offset(page.offset)
            ).fetchall()
        return Page(items=[_row_to_entry(r) for r in rows], total=total, page=page.page, limit=page.limit)

    def recent_for_project(self, project_id: int, limit: int = DEFAULT_RECENT_LIMIT) -> list[ActivityLogEntry]:
        """The newest `limit` entries, clamped to 1..MAX_RECENT_LIMIT."""
        bounded = max(1, min(limit, MAX_RECENT_LIMIT))
        with self.engine.connect() as conn:
            rows = conn.execute(
                self._with_actor()
                .where(activity_logs.c.project_id == project_id)
                .order_by(activity_logs.c.created_at.desc(), activity_logs.c.id.desc())
                .limit(bounded)
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def list_for_user(self, user_id: int, page: PageRequest) -> Page[ActivityLogEntry]:
        """Everything user_id did, across all projects, with each project's name."""
        condition = activity_logs.c.user_id == user_id
        stmt = (
            select(activity_logs, projects.c.name.label("project_name"))
            .join(projects, projects.c.id == activity_logs.c.project_id)
            .where(condition)
            .order_by(activity_logs.c.created_at.desc(), activity_logs.c.id.desc())
            .limit(page.limit)
            .offset(page.offset)
        )
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(activity_logs).where(condition)).scalar() or 0
            rows = conn.execute(stmt).fetchall()
        return Page(items=[_row_to_entry(r) for r in rows], total=total, page=page.page, limit=page.limit)

    @staticmethod
    def _with_actor():
        return select(activity_logs, users.c.display_name.label("user_display_name")).outerjoin(
            users, users.c.id == activity_logs.c.user_id
        )


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_entry(row) -> ActivityLogEntry:
    return ActivityLogEntry(
        id=row.id,
        project_id=row.project_id,
        user_id=row.user_id,
        action=row.action,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        details=json.loads(row.details),
        created_at=row.created_at,
        user_display_name=getattr(row, "user_display_name", None),
        project_name=getattr(row, "project_name", None),
    )

"""
tasks/store.py -- SQLAlchemy Core persistence for tasks, labels, comments, time logs.

Pattern: Repository + Data Mapper. Three repositories share this module
because their tables reference each other:

  TaskStore     tasks, task_assignees, labels, task_labels
  CommentStore  comments
  TimeLogStore  time_logs

Referential integrity (all ON DELETE CASCADE from the parent):
  tasks.project_id -> projects.id      tasks.parent_task_id -> tasks.id
  task_assignees.task_id -> tasks.id   task_labels.task_id -> tasks.id
  labels.project_id -> projects.id     task_labels.label_id -> labels.id
  comments.task_id -> tasks.id         time_logs.task_id -> tasks.id

Deleting a project therefore removes its whole task tree in one statement.

Security: all queries use bound parameters. LIKE patterns are built from
user input but passed as bound values, never interpolated into SQL text.
"""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    insert,
    or_,
    select,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.store import users
from core.db import LIKE_ESCAPE, contains_pattern, metadata, now_iso
from core.pagination import Page, PageRequest
from projects.store import projects
from tasks.models import Comment, Label, Task, TaskFilter, TimeLog

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

tasks = Table(
    "tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey(projects.c.id, ondelete="CASCADE"), nullable=False, index=True),
    Column("title", String(200), nullable=False),
    Column("description", Text),
    Column("status", String(20), nullable=False, server_default="todo"),
    Column("priority", String(20), nullable=False, server_default="medium"),
    Column("due_date", String(10)),  # YYYY-MM-DD
    Column("parent_task_id", Integer, ForeignKey("tasks.id", ondelete="CASCADE"), index=True),
    Column("created_by", Integer, ForeignKey(users.c.id), nullable=False),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

task_assignees = Table(
    "task_assignees",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("task_id", Integer, ForeignKey(tasks.c.id, ondelete="CASCADE"), nullable=False),
    Column("user_id", Integer, ForeignKey(users.c.id, ondelete="CASCADE"), nullable=False, index=True),
    Column("assigned_at", String(40), nullable=False),
    UniqueConstraint("task_id", "user_id", name="uq_task_assignee"),
)

labels = Table(
    "labels",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey(projects.c.id, ondelete="CASCADE"), nullable=False, index=True),
    Column("name", String(50), nullable=False),
    Column("color", String(7), nullable=False),
)

task_labels = Table(
    "task_labels",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("task_id", Integer, ForeignKey(tasks.c.id, ondelete="CASCADE"), nullable=False),
    Column("label_id", Integer, ForeignKey(labels.c.id, ondelete="CASCADE"), nullable=False, index=True),
    UniqueConstraint("task_id", "label_id", name="uq_task_label"),
)

comments = Table(
    "comments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("task_id", Integer, ForeignKey(tasks.c.id, ondelete="CASCADE"), nullable=False, index=True),
    Column("user_id", Integer, ForeignKey(users.c.id, ondelete="CASCADE"), nullable=False),
    Column("content", Text, nullable=False),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

time_logs = Table(
    "time_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("task_id", Integer, ForeignKey(tasks.c.id, ondelete="CASCADE"), nullable=False, index=True),
    Column("user_id", Integer, ForeignKey(users.c.id, ondelete="CASCADE"), nullable=False, index=True),
    Column("duration_minutes", Integer, nullable=False),
    Column("description", Text),
    Column("logged_on", String(10), nullable=False),  # YYYY-MM-DD
    Column("created_at", String(40), nullable=False),
    CheckConstraint("duration_minutes > 0", name="ck_time_log_positive"),
)

_MUTABLE_TASK_FIELDS = {"title", "description", "status", "priority", "due_date"}


# ---------------------------------------------------------------------------
# Tasks and labels
# ---------------------------------------------------------------------------


class TaskStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(self, task: Task) -> int:
        stamp = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                tasks.insert().values(
                    project_id=task.project_id,
                    title=task.title,
                    description=task.description,
                    status=task.status,
                    priority=task.priority,
                    due_date=task.due_date,
                    parent_task_id=task.parent_task_id,
                    created_by=task.created_by,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_task(self, task_id: int) -> Task | None:
        """Single task with assignees, labels and direct subtask ids."""
        with self.engine.connect() as conn:
            row = conn.execute(tasks.select().where(tasks.c.id == task_id)).fetchone()
            if row is None:
                return None
            task = _row_to_task(row)
            self._attach_relations(conn, [task])
            task.subtask_ids = list(
                conn.execute(
                    select(tasks.c.id).where(tasks.c.parent_task_id == task_id).order_by(tasks.c.id)
                ).scalars()
            )
        return task

    def list_tasks(self, project_id: int, page: PageRequest, filters: TaskFilter | None = None) -> Page[Task]:
        """Top-level tasks of a project, newest first."""
        condition = (tasks.c.project_id == project_id) & tasks.c.parent_task_id.is_(None)
        if filters is not None:
            if filters.status is not None:
                condition = condition & (tasks.c.status == filters.status)
            if filters.priority is not None:
                condition = condition & (tasks.c.priority == filters.priority)
            if filters.assignee_id is not None:
                condition = condition & tasks.c.id.in_(
                    select(task_assignees.c.task_id).where(task_assignees.c.user_id == filters.assignee_id)
                )
            if filters.label_id is not None:
                condition = condition & tasks.c.id.in_(
                    select(task_labels.c.task_id).where(task_labels.c.label_id == filters.label_id)
                )
            if filters.search:
                pattern = contains_pattern(filters.search)
                condition = condition & or_(
                    func.lower(tasks.c.title).like(pattern, escape=LIKE_ESCAPE),
                    func.lower(func.coalesce(tasks.c.description, "")).like(pattern, escape=LIKE_ESCAPE),
                )
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(tasks).where(condition)).scalar() or 0
            rows = conn.execute(
                tasks.select()
                .where(condition)
                .order_by(tasks.c.created_at.desc(), tasks.c.id.desc())
                .limit(page.limit)
                .offset(page.offset)
            ).fetchall()
            items = [_row_to_task(r) for r in rows]
            self._attach_relations(conn, items)
        return Page(items=items, total=total, page=page.page, limit=page.limit)

    def tasks_due_between(self, project_id: int, start: str, end: str) -> list[Task]:
        """Tasks (any depth) whose due date falls in [start, end], soonest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                tasks.select()
                .where(
                    (tasks.c.project_id == project_id)
                    & tasks.c.due_date.is_not(None)
                    & (tasks.c.due_date >= start)
                    & (tasks.c.due_date <= end)
                )
                .order_by(tasks.c.due_date, tasks.c.id)
            ).fetchall()
            items = [_row_to_task(r) for r in rows]
            self._attach_relations(conn, items)
        return items

    def update_task(self, task_id: int, **fields) -> bool:
        unknown = set(fields) - _MUTABLE_TASK_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {unknown!r}")
        fields["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(tasks.update().where(tasks.c.id == task_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_task(self, task_id: int) -> bool:
        """Delete a task; subtasks, assignees, labels links, comments and time logs cascade."""
        with self.engine.connect() as conn:
            result = conn.execute(tasks.delete().where(tasks.c.id == task_id))
            conn.commit()
        return result.rowcount > 0

    def status_counts(self, project_id: int) -> tuple[dict[str, int], dict[str, int]]:
        """(counts by status, counts by priority) across every task of the project."""
        with self.engine.connect() as conn:
            by_status = conn.execute(
                select(tasks.c.status, func.count())
                .where(tasks.c.project_id == project_id)
                .group_by(tasks.c.status)
            ).fetchall()
            by_priority = conn.execute(
                select(tasks.c.priority, func.count())
                .where(tasks.c.project_id == project_id)
                .group_by(tasks.c.priority)
            ).fetchall()
        return {s: n for s, n in by_status}, {p: n for p, n in by_priority}

    # ------------------------------------------------------------------
    # Assignees
    # ------------------------------------------------------------------

    def add_assignees(self, task_id: int, user_ids: list[int]) -> list[int]:
        """Assign users not already assigned. Returns the ids actually added.

        Each row goes in with ON CONFLICT DO NOTHING (or an IntegrityError
        catch on other dialects), so a concurrent assign of the same user is
        reported as "not added" instead of failing.
        """
        dialect = self.engine.dialect.name
        stamp = now_iso()
        added: list[int] = []
        with self.engine.connect() as conn:
            for uid in dict.fromkeys(user_ids):
                values = {"task_id": task_id, "user_id": uid, "assigned_at": stamp}
                if dialect == "postgresql":
                    stmt = pg_insert(task_assignees).values(**values).on_conflict_do_nothing(
                        index_elements=[task_assignees.c.task_id, task_assignees.c.user_id]
                    )
                elif dialect == "sqlite":
                    stmt = sqlite_insert(task_assignees).values(**values).on_conflict_do_nothing(
                        index_elements=[task_assignees.c.task_id, task_assignees.c.user_id]
                    )
                else:
                    stmt = insert(task_assignees).values(**values)
                try:
                    result = conn.execute(stmt)
                    conn.commit()
                except IntegrityError:
                    # Assigned concurrently.
                    conn.rollback()
                    continue
                if result.rowcount == 1:
                    added.append(uid)
        return added

    def replace_assignees(self, task_id: int, user_ids: list[int]) -> None:
        with self.engine.connect() as conn:
            conn.execute(task_assignees.delete().where(task_assignees.c.task_id == task_id))
            unique_ids = list(dict.fromkeys(user_ids))
            if unique_ids:
                stamp = now_iso()
                conn.execute(
                    task_assignees.insert(),
                    [{"task_id": task_id, "user_id": uid, "assigned_at": stamp} for uid in unique_ids],
                )
            conn.commit()

    def remove_assignee(self, task_id: int, user_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                task_assignees.delete().where(
                    (task_assignees.c.task_id == task_id) & (task_assignees.c.user_id == user_id)
                )
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    def replace_labels(self, task_id: int, label_ids: list[int]) -> None:
        with self.engine.connect() as conn:
            conn.execute(task_labels.delete().where(task_labels.c.task_id == task_id))
            unique_ids = list(dict.fromkeys(label_ids))
            if unique_ids:
                conn.execute(task_labels.insert(), [{"task_id": task_id, "label_id": lid} for lid in unique_ids])
            conn.commit()

    def create_label(self, label: Label) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                labels.insert().values(project_id=label.project_id, name=label.name, color=label.color)
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_label(self, label_id: int) -> Label | None:
        with self.engine.connect() as conn:
            row = conn.execute(labels.select().where(labels.c.id == label_id)).fetchone()
        return _row_to_label(row) if row is not None else None

    def list_labels(self, project_id: int) -> list[Label]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                labels.select().where(labels.c.project_id == project_id).order_by(labels.c.name, labels.c.id)
            ).fetchall()
        return [_row_to_label(r) for r in rows]

    def label_ids_in_project(self, project_id: int, label_ids: list[int]) -> set[int]:
        if not label_ids:
            return set()
        with self.engine.connect() as conn:
            found = conn.execute(
                select(labels.c.id).where((labels.c.project_id == project_id) & labels.c.id.in_(label_ids))
            ).scalars()
            return set(found)

    def update_label(self, label_id: int, **fields) -> bool:
        unknown = set(fields) - {"name", "color"}
        if unknown:
            raise ValueError(f"Unknown label fields: {unknown!r}")
        with self.engine.connect() as conn:
            result = conn.execute(labels.update().where(labels.c.id == label_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_label(self, label_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(labels.delete().where(labels.c.id == label_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _attach_relations(conn, items: list[Task]) -> None:
        """Fill assignee_ids / label_ids for a batch of tasks with two queries."""
        if not items:
            return
        ids = [t.id for t in items]
        assignees: dict[int, list[int]] = defaultdict(list)
        for task_id, user_id in conn.execute(
            select(task_assignees.c.task_id, task_assignees.c.user_id)
            .where(task_assignees.c.task_id.in_(ids))
            .order_by(task_assignees.c.id)
        ):
            assignees[task_id].append(user_id)
        task_label_ids: dict[int, list[int]] = defaultdict(list)
        for task_id, label_id in conn.execute(
            select(task_labels.c.task_id, task_labels.c.label_id)
            .where(task_labels.c.task_id.in_(ids))
            .order_by(task_labels.c.id)
        ):
            task_label_ids[task_id].append(label_id)
        for task in items:
            task.assignee_ids = assignees.get(task.id, [])
            task.label_ids = task_label_ids.get(task.id, [])


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


class CommentStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    def create_comment(self, comment: Comment) -> int:
        stamp = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                comments.insert().values(
                    task_id=comment.task_id,
                    user_id=comment.user_id,
                    content=comment.content,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_comment(self, comment_id: int) -> Comment | None:
        with self.engine.connect() as conn:
            row = conn.execute(self._with_author().where(comments.c.id == comment_id)).fetchone()
        return _row_to_comment(row) if row is not None else None

    def list_for_task(self, task_id: int, page: PageRequest) -> Page[Comment]:
        condition = comments.c.task_id == task_id
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(comments).where(condition)).scalar() or 0
            rows = conn.execute(
                self._with_author()
                .where(condition)
                .order_by(comments.c.created_at.desc(), comments.c.id.desc())
                .limit(page.limit)
                .offset(page.offset)
            ).fetchall()
        return Page(items=[_row_to_comment(r) for r in rows], total=total, page=page.page, limit=page.limit)

    def update_comment(self, comment_id: int, content: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                comments.update().where(comments.c.id == comment_id).values(content=content, updated_at=now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def delete_comment(self, comment_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(comments.delete().where(comments.c.id == comment_id))
            conn.commit()
        return result.rowcount > 0

    @staticmethod
    def _with_author():
        return select(comments, users.c.display_name.label("user_display_name")).outerjoin(
            users, users.c.id == comments.c.user_id
        )


# ---------------------------------------------------------------------------
# Time logs
# ---------------------------------------------------------------------------


class TimeLogStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    def create_time_log(self, log: TimeLog) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                time_logs.insert().values(
                    task_id=log.task_id,
                    user_id=log.user_id,
                    duration_minutes=log.duration_minutes,
                    description=log.description,
                    logged_on=log.logged_on,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_time_log(self, log_id: int) -> TimeLog | None:
        with self.engine.connect() as conn:
            row = conn.execute(self._joined().where(time_logs.c.id == log_id)).fetchone()
        return _row_to_time_log(row) if row is not None else None

    def list_for_task(self, task_id: int, page: PageRequest) -> Page[TimeLog]:
        return self._page(time_logs.c.task_id == task_id, page)

    def list_for_project(
        self, project_id: int, page: PageRequest, start: str | None = None, end: str | None = None
    ) -> Page[TimeLog]:
        return self._page(self._project_condition(project_id, start, end), page)

    def update_time_log(self, log_id: int, **fields) -> bool:
        unknown = set(fields) - {"duration_minutes", "description", "logged_on"}
        if unknown:
            raise ValueError(f"Unknown time log fields: {unknown!r}")
        with self.engine.connect() as conn:
            result = conn.execute(time_logs.update().where(time_logs.c.id == log_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_time_log(self, log_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(time_logs.delete().where(time_logs.c.id == log_id))
            conn.commit()
        return result.rowcount > 0

    def project_report(self, project_id: int, start: str | None = None, end: str | None = None) -> dict:
        """Minutes logged in the project, grouped by user and by task, plus the overall total."""
        condition = self._project_condition(project_id, start, end)
        minutes = func.sum(time_logs.c.duration_minutes).label("total_minutes")
        with self.engine.connect() as conn:
            by_user = conn.execute(
                select(users.c.id, users.c.display_name, minutes)
                .select_from(
                    time_logs.join(tasks, tasks.c.id == time_logs.c.task_id).join(
                        users, users.c.id == time_logs.c.user_id
                    )
                )
                .where(condition)
                .group_by(users.c.id, users.c.display_name)
                .order_by(minutes.desc(), users.c.id)
            ).fetchall()
            by_task = conn.execute(
                select(tasks.c.id, tasks.c.title, minutes)
                .select_from(time_logs.join(tasks, tasks.c.id == time_logs.c.task_id))
                .where(condition)
                .group_by(tasks.c.id, tasks.c.title)
                .order_by(minutes.desc(), tasks.c.id)
            ).fetchall()
            total = conn.execute(
                select(func.coalesce(func.sum(time_logs.c.duration_minutes), 0))
                .select_from(time_logs.join(tasks, tasks.c.id == time_logs.c.task_id))
                .where(condition)
            ).scalar()
        return {
            "by_user": [
                {"user_id": r.id, "display_name": r.display_name, "total_minutes": int(r.total_minutes)}
                for r in by_user
            ],
            "by_task": [{"task_id": r.id, "title": r.title, "total_minutes": int(r.total_minutes)} for r in by_task],
            "total_minutes": int(total or 0),
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _project_condition(project_id: int, start: str | None, end: str | None):
        condition = tasks.c.project_id == project_id
        if start is not None:
            condition = condition & (time_logs.c.logged_on >= start)
        if end is not None:
            condition = condition & (time_logs.c.logged_on <= end)
        return condition

    @staticmethod
    def _joined():
        return (
            select(
                time_logs,
                tasks.c.project_id,
                tasks.c.title.label("task_title"),
                users.c.display_name.label("user_display_name"),
            )
            .select_from(
                time_logs.join(tasks, tasks.c.id == time_logs.c.task_id).outerjoin(
                    users, users.c.id == time_logs.c.user_id
                )
            )
        )

    def _page(self, condition, page: PageRequest) -> Page[TimeLog]:
        with self.engine.connect() as conn:
            total = (
                conn.execute(
                    select(func.count())
                    .select_from(time_logs.join(tasks, tasks.c.id == time_logs.c.task_id))
                    .where(condition)
                ).scalar()
                or 0
            )
            rows = conn.execute(
                self._joined()
                .where(condition)
                .order_by(time_logs.c.logged_on.desc(), time_logs.c.id.desc())
                .limit(page.limit)
                .offset(page.offset)
            ).fetchall()
        return Page(items=[_row_to_time_log(r) for r in rows], total=total, page=page.page, limit=page.limit)


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_task(row) -> Task:
    return Task(
        id=row.id,
        project_id=row.project_id,
        title=row.title,
        description=row.description,
        status=row.status,
        priority=row.priority,
        due_date=row.due_date,
        parent_task_id=row.parent_task_id,
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_label(row) -> Label:
    return Label(id=row.id, project_id=row.project_id, name=row.name, color=row.color)


def _row_to_comment(row) -> Comment:
    return Comment(
        id=row.id,
        task_id=row.task_id,
        user_id=row.user_id,
        content=row.content,
        created_at=row.created_at,
        updated_at=row.updated_at,
        user_display_name=getattr(row, "user_display_name", None),
    )


def _row_to_time_log(row) -> TimeLog:
    return TimeLog(
        id=row.id,
        task_id=row.task_id,
        user_id=row.user_id,
        duration_minutes=row.duration_minutes,
        description=row.description,
        logged_on=row.logged_on,
        created_at=row.created_at,
        project_id=getattr(row, "project_id", None),
        task_title=getattr(row, "task_title", None),
        user_display_name=getattr(row, "user_display_name", None),
    )

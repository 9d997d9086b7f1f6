"""
tasks/comments.py -- Comments on tasks.

Anyone who can read the project may comment and read comments. Editing and
deleting use the author override: the author always may, anyone else needs
task:delete on the project. task:update alone is not enough, so plain
members cannot rewrite each other's comments.
"""

from __future__ import annotations

from activity.models import ActivityEvent
from activity.store import AuditLog
from core.errors import NotFoundError, ValidationError
from core.pagination import Page, PageRequest
from rbac.gate import PermissionGate
from tasks.models import Comment, Task
from tasks.store import CommentStore, TaskStore

MAX_COMMENT_LENGTH = 10_000
EXCERPT_LENGTH = 100


def _clean_content(content: str) -> str:
    cleaned = content.strip()
    if not cleaned:
        raise ValidationError("Comment must not be empty.")
    if len(cleaned) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters.")
    return cleaned


class CommentService:
    def __init__(self, store: CommentStore, tasks: TaskStore, gate: PermissionGate, audit: AuditLog) -> None:
        self.store = store
        self.tasks = tasks
        self.gate = gate
        self.audit = audit

    def create_comment(self, task_id: int, user_id: int, content: str) -> Comment:
        task = self._readable_task(task_id, user_id)
        text = _clean_content(content)
        comment_id = self.store.create_comment(Comment(task_id=task_id, user_id=user_id, content=text))
        self.audit.record_activity(
            ActivityEvent(
                task.project_id,
                user_id,
                "commented",
                "comment",
                comment_id,
                {"task_id": task_id, "content": text[:EXCERPT_LENGTH]},
            )
        )
        return self.store.get_comment(comment_id)

    def list_comments(self, task_id: int, user_id: int, page: PageRequest) -> Page[Comment]:
        self._readable_task(task_id, user_id)
        return self.store.list_for_task(task_id, page)

    def get_comment(self, comment_id: int, user_id: int) -> Comment:
        comment = self._comment(comment_id)
        self._readable_task(comment.task_id, user_id)
        return comment

    def update_comment(self, comment_id: int, user_id: int, content: str) -> Comment:
        comment = self._comment(comment_id)
        task = self._task(comment.task_id)
        self.gate.require_author_or(task.project_id, user_id, comment.user_id, "task", "delete")
        self.store.update_comment(comment_id, _clean_content(content))
        self.audit.record_activity(
            ActivityEvent(task.project_id, user_id, "updated", "comment", comment_id, {"task_id": task.id})
        )
        return self.store.get_comment(comment_id)

    def delete_comment(self, comment_id: int, user_id: int) -> None:
        comment = self._comment(comment_id)
        task = self._task(comment.task_id)
        self.gate.require_author_or(task.project_id, user_id, comment.user_id, "task", "delete")
        self.store.delete_comment(comment_id)
        self.audit.record_activity(
            ActivityEvent(task.project_id, user_id, "deleted", "comment", comment_id, {"task_id": task.id})
        )

    def _comment(self, comment_id: int) -> Comment:
        comment = self.store.get_comment(comment_id)
        if comment is None:
            raise NotFoundError("Comment not found.")
        return comment

    def _task(self, task_id: int) -> Task:
        task = self.tasks.get_task(task_id)
        if task is None:
            raise NotFoundError("Task not found.")
        return task

    def _readable_task(self, task_id: int, user_id: int) -> Task:
        task = self._task(task_id)
        self.gate.require_read(task.project_id, user_id)
        return task

"""
projects/service.py -- Project and membership operations.

Every mutation follows the same sequence:
  1. PermissionGate check (raises ForbiddenError / NotFoundError)
  2. store write (commits)
  3. AuditLog.record_activity() in its own transaction

Permission mapping:
  create project         any authenticated user
  read / list members    owner or any member
  update project         project:update
  delete project         owner only
  add / update member    project:manage_members
  remove member          owner-removal guard first, then project:manage_members

The owner also receives an admin membership row on creation so member lists
show them, but authorization never depends on that row: the owner bypass in
PermissionGate applies even if it is missing.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from activity.models import ActivityEvent
from activity.store import AuditLog
from auth.store import IdentityStore
from core.errors import ConflictError, NotFoundError, ValidationError
from core.pagination import Page, PageRequest
from projects.models import PROJECT_STATUSES, Membership, Project
from projects.store import ProjectStore
from rbac.catalog import RoleCatalog
from rbac.gate import PermissionGate
from rbac.vocabulary import ADMIN_ROLE

logger = logging.getLogger("taskboard.projects")

MAX_PROJECT_NAME_LENGTH = 100


def _clean_project_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Project name must not be empty.")
    if len(cleaned) > MAX_PROJECT_NAME_LENGTH:
        raise ValidationError(f"Project name must be at most {MAX_PROJECT_NAME_LENGTH} characters.")
    return cleaned


def _check_status(status: str) -> None:
    if status not in PROJECT_STATUSES:
        raise ValidationError(f"Unknown project status '{status}'.", errors=list(PROJECT_STATUSES))


class ProjectService:
    def __init__(
        self,
        store: ProjectStore,
        identities: IdentityStore,
        catalog: RoleCatalog,
        gate: PermissionGate,
        audit: AuditLog,
    ) -> None:
        self.store = store
        self.identities = identities
        self.catalog = catalog
        self.gate = gate
        self.audit = audit

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, user_id: int, name: str, description: str | None = None) -> Project:
        project_id = self.store.create_project(
            Project(name=_clean_project_name(name), description=description, owner_id=user_id)
        )
        admin = self.catalog.get_by_name(ADMIN_ROLE)
        self.store.add_member(project_id, user_id, admin.id)
        self.audit.record_activity(
            ActivityEvent(project_id, user_id, "created", "project", project_id, {"name": name.strip()})
        )
        logger.info("User %d created project %d", user_id, project_id)
        return self.store.get_project(project_id)

    def list_projects(self, user_id: int, page: PageRequest, status: str | None = None) -> Page[Project]:
        if status is not None:
            _check_status(status)
        return self.store.list_for_user(user_id, page, status)

    def get_project(self, project_id: int, user_id: int) -> Project:
        return self.gate.require_read(project_id, user_id)

    def update_project(
        self,
        project_id: int,
        user_id: int,
        name: str | None = None,
        description: str | None = None,
        status: str | None = None,
    ) -> Project:
        project = self.gate.require(project_id, user_id, "project", "update")
        changes: dict = {}
        if name is not None:
            changes["name"] = _clean_project_name(name)
        if description is not None:
            changes["description"] = description
        if status is not None:
            _check_status(status)
            changes["status"] = status
        if not changes:
            return project

        self.store.update_project(project_id, **changes)
        completed = changes.get("status") == "completed" and project.status != "completed"
        self.audit.record_activity(
            ActivityEvent(project_id, user_id, "completed" if completed else "updated", "project", project_id, changes)
        )
        return self.store.get_project(project_id)

    def delete_project(self, project_id: int, user_id: int) -> None:
        """Owner-only. The project's ledger is removed with it (cascade)."""
        self.gate.require_owner(project_id, user_id, "Only the project owner can delete the project.")
        self.store.delete_project(project_id)
        logger.info("User %d deleted project %d", user_id, project_id)

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def list_members(self, project_id: int, user_id: int) -> list[Membership]:
        self.gate.require_read(project_id, user_id)
        return self.store.list_members(project_id)

    def add_member(self, project_id: int, actor_id: int, member_user_id: int, role_id: int) -> Membership:
        self.gate.require(project_id, actor_id, "project", "manage_members")
        member = self.identities.get_by_id(member_user_id)
        if member is None or not member.is_active:
            raise NotFoundError("User not found.")
        role = self.catalog.get(role_id)
        if self.store.get_membership(project_id, member_user_id) is not None:
            raise ConflictError("User is already a member of this project.")
        try:
            self.store.add_member(project_id, member_user_id, role.id)
        except IntegrityError as exc:
            raise ConflictError("User is already a member of this project.") from exc
        self.audit.record_activity(
            ActivityEvent(
                project_id,
                actor_id,
                "assigned",
                "member",
                member_user_id,
                {"user_id": member_user_id, "role": role.name},
            )
        )
        return self._member_view(project_id, member_user_id)

    def update_member_role(self, project_id: int, actor_id: int, member_user_id: int, role_id: int) -> Membership:
        self.gate.require(project_id, actor_id, "project", "manage_members")
        if self.store.get_membership(project_id, member_user_id) is None:
            raise NotFoundError("Member not found.")
        role = self.catalog.get(role_id)
        self.store.update_member_role(project_id, member_user_id, role.id)
        self.audit.record_activity(
            ActivityEvent(
                project_id,
                actor_id,
                "updated",
                "member",
                member_user_id,
                {"user_id": member_user_id, "role": role.name},
            )
        )
        return self._member_view(project_id, member_user_id)

    def remove_member(self, project_id: int, actor_id: int, member_user_id: int) -> None:
        project = self.gate.require_read(project_id, actor_id)
        self.gate.ensure_member_removable(project, member_user_id)
        self.gate.require(project_id, actor_id, "project", "manage_members")
        if not self.store.remove_member(project_id, member_user_id):
            raise NotFoundError("Member not found.")
        self.audit.record_activity(
            ActivityEvent(project_id, actor_id, "unassigned", "member", member_user_id, {"user_id": member_user_id})
        )

    def _member_view(self, project_id: int, user_id: int) -> Membership:
        for membership in self.store.list_members(project_id):
            if membership.user_id == user_id:
                return membership
        raise NotFoundError("Member not found.")

"""
rbac/gate.py -- MembershipResolver and PermissionGate.

The single authorization primitive for every state-changing operation:

  authorize(project_id, user_id, resource, action) -> bool
    1. user is the project owner           -> True (owner bypass)
    2. no membership row for (project, user) -> False
    3. True iff action in role.permissions[resource]; a missing resource key
       means no actions.

Reads are gated by the weaker can_read(): owner OR any membership row, with no
action-level check.

The require_* helpers raise instead of returning bool so resource services can
guard a mutation in one line. They also fix the error precedence every caller
shares: an unknown project is NotFoundError; a known project the caller cannot
read is ForbiddenError.

Owner-removal guard: ensure_member_removable() fails for the owner regardless
of what authorize() would say, because ownership is not a revocable
membership. Callers run it before the manage_members check.

Layer rule: ProjectStore is injected; no runtime import of projects/.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.errors import ForbiddenError, NotFoundError
from rbac.catalog import RoleCatalog
from rbac.models import Role

if TYPE_CHECKING:
    from projects.models import Project
    from projects.store import ProjectStore


class MembershipResolver:
    """Maps (project, user) to the Role of the membership row, if any."""

    def __init__(self, projects: ProjectStore, catalog: RoleCatalog) -> None:
        self.projects = projects
        self.catalog = catalog

    def role_for(self, project_id: int, user_id: int) -> Role | None:
        membership = self.projects.get_membership(project_id, user_id)
        if membership is None:
            return None
        return self.catalog.find(membership.role_id)

    def is_member(self, project_id: int, user_id: int) -> bool:
        return self.projects.get_membership(project_id, user_id) is not None


class PermissionGate:
    def __init__(self, projects: ProjectStore, resolver: MembershipResolver) -> None:
        self.projects = projects
        self.resolver = resolver

    # ------------------------------------------------------------------
    # Decisions (bool)
    # ------------------------------------------------------------------

    def authorize(self, project_id: int, user_id: int, resource: str, action: str) -> bool:
        project = self.projects.get_project(project_id)
        if project is None:
            return False
        return self._decide(project, user_id, resource, action)

    def can_read(self, project_id: int, user_id: int) -> bool:
        project = self.projects.get_project(project_id)
        if project is None:
            return False
        return project.owner_id == user_id or self.resolver.is_member(project_id, user_id)

    def _decide(self, project: Project, user_id: int, resource: str, action: str) -> bool:
        if project.owner_id == user_id:
            return True
        role = self.resolver.role_for(project.id, user_id)
        if role is None:
            return False
        return role.allows(resource, action)

    # ------------------------------------------------------------------
    # Guards (raise)
    # ------------------------------------------------------------------

    def require_read(self, project_id: int, user_id: int) -> Project:
        """Return the project if user_id may read it.

        Raises NotFoundError for an unknown project and ForbiddenError when the
        user is neither owner nor member.
        """
        project = self.projects.get_project(project_id)
        if project is None:
            raise NotFoundError("Project not found.")
        if project.owner_id != user_id and not self.resolver.is_member(project_id, user_id):
            raise ForbiddenError("You do not have access to this project.")
        return project

    def require(self, project_id: int, user_id: int, resource: str, action: str) -> Project:
        """Return the project if user_id holds resource:action on it, else raise."""
        project = self.require_read(project_id, user_id)
        if not self._decide(project, user_id, resource, action):
            raise ForbiddenError(f"You do not have permission to {action.replace('_', ' ')} {resource}s.")
        return project

    def require_owner(self, project_id: int, user_id: int, reason: str) -> Project:
        project = self.require_read(project_id, user_id)
        if project.owner_id != user_id:
            raise ForbiddenError(reason)
        return project

    def require_author_or(
        self, project_id: int, user_id: int, author_id: int, resource: str, action: str
    ) -> Project:
        """Authors may always act on their own entry; everyone else needs resource:action.

        Read access is still required of the author, so a former member cannot
        edit entries in a project they have left.
        """
        project = self.require_read(project_id, user_id)
        if user_id == author_id:
            return project
        if not self._decide(project, user_id, resource, action):
            raise ForbiddenError("You can only modify your own entries.")
        return project

    def ensure_member_removable(self, project: Project, user_id: int) -> None:
        if user_id == project.owner_id:
            raise ForbiddenError("Cannot remove the project owner.")

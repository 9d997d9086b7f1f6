"""
projects/store.py -- SQLAlchemy Core persistence for projects and memberships.

Pattern: Repository + Data Mapper.

Referential integrity is declared, not emulated:
  projects.owner_id          -> users.id   (RESTRICT; users are never hard-deleted)
  project_members.project_id -> projects.id (CASCADE with the project)
  project_members.user_id    -> users.id
  project_members.role_id    -> roles.id   (RESTRICT; a role in use cannot be deleted)
  UNIQUE(project_id, user_id) guarantees one membership row per pair; a
  concurrent duplicate add surfaces as IntegrityError.

Layer rule: imports core/ plus the users and roles tables for foreign keys.
"""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, String, Table, Text, UniqueConstraint, func, or_, select
from sqlalchemy.engine import Engine

from auth.store import users
from core.db import metadata, now_iso
from core.pagination import Page, PageRequest
from projects.models import Membership, Project
from rbac.store import roles

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

projects = Table(
    "projects",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("description", Text),
    Column("owner_id", Integer, ForeignKey(users.c.id, ondelete="RESTRICT"), nullable=False, index=True),
    Column("status", String(20), nullable=False, server_default="active"),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

project_members = Table(
    "project_members",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey(projects.c.id, ondelete="CASCADE"), nullable=False),
    Column("user_id", Integer, ForeignKey(users.c.id, ondelete="CASCADE"), nullable=False, index=True),
    Column("role_id", Integer, ForeignKey(roles.c.id, ondelete="RESTRICT"), nullable=False),
    Column("joined_at", String(40), nullable=False),
    UniqueConstraint("project_id", "user_id", name="uq_project_member"),
)

_MUTABLE_PROJECT_FIELDS = {"name", "description", "status"}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ProjectStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, project: Project) -> int:
        stamp = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                projects.insert().values(
                    name=project.name,
                    description=project.description,
                    owner_id=project.owner_id,
                    status=project.status,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_project(self, project_id: int) -> Project | None:
        with self.engine.connect() as conn:
            row = conn.execute(projects.select().where(projects.c.id == project_id)).fetchone()
        return _row_to_project(row) if row is not None else None

    def update_project(self, project_id: int, **fields) -> bool:
        unknown = set(fields) - _MUTABLE_PROJECT_FIELDS
        if unknown:
            raise ValueError(f"Unknown project fields: {unknown!r}")
        fields["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(projects.update().where(projects.c.id == project_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_project(self, project_id: int) -> bool:
        """Delete a project. Memberships, tasks and activity rows cascade."""
        with self.engine.connect() as conn:
            result = conn.execute(projects.delete().where(projects.c.id == project_id))
            conn.commit()
        return result.rowcount > 0

    def list_for_user(self, user_id: int, page: PageRequest, status: str | None = None) -> Page[Project]:
        """Projects the user owns or belongs to, most recently updated first."""
        member_of = select(project_members.c.project_id).where(project_members.c.user_id == user_id)
        condition = or_(projects.c.owner_id == user_id, projects.c.id.in_(member_of))
        if status is not None:
            condition = condition & (projects.c.status == status)
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(projects).where(condition)).scalar() or 0
            rows = conn.execute(
                projects.select()
                .where(condition)
                .order_by(projects.c.updated_at.desc(), projects.c.id.desc())
                .limit(page.limit)
                .offset(page.offset)
            ).fetchall()
        return Page(items=[_row_to_project(r) for r in rows], total=total, page=page.page, limit=page.limit)

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    def add_member(self, project_id: int, user_id: int, role_id: int) -> int:
        """Insert a membership row. Raises IntegrityError if the pair already exists."""
        with self.engine.connect() as conn:
            result = conn.execute(
                project_members.insert().values(
                    project_id=project_id,
                    user_id=user_id,
                    role_id=role_id,
                    joined_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_membership(self, project_id: int, user_id: int) -> Membership | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                project_members.select().where(
                    (project_members.c.project_id == project_id) & (project_members.c.user_id == user_id)
                )
            ).fetchone()
        return _row_to_membership(row) if row is not None else None

    def update_member_role(self, project_id: int, user_id: int, role_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                project_members.update()
                .where((project_members.c.project_id == project_id) & (project_members.c.user_id == user_id))
                .values(role_id=role_id)
            )
            conn.commit()
        return result.rowcount > 0

    def remove_member(self, project_id: int, user_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                project_members.delete().where(
                    (project_members.c.project_id == project_id) & (project_members.c.user_id == user_id)
                )
            )
            conn.commit()
        return result.rowcount > 0

    def list_members(self, project_id: int) -> list[Membership]:
        """Members with role name and user profile, in join order."""
        stmt = (
            select(
                project_members,
                roles.c.name.label("role_name"),
                users.c.email,
                users.c.display_name,
            )
            .join(roles, roles.c.id == project_members.c.role_id)
            .join(users, users.c.id == project_members.c.user_id)
            .where(project_members.c.project_id == project_id)
            .order_by(project_members.c.joined_at, project_members.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_membership(r) for r in rows]


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_project(row) -> Project:
    return Project(
        id=row.id,
        name=row.name,
        description=row.description,
        owner_id=row.owner_id,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_membership(row) -> Membership:
    return Membership(
        id=row.id,
        project_id=row.project_id,
        user_id=row.user_id,
        role_id=row.role_id,
        joined_at=row.joined_at,
        role_name=getattr(row, "role_name", None),
        email=getattr(row, "email", None),
        display_name=getattr(row, "display_name", None),
    )

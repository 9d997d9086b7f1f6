"""
rbac/catalog.py -- RoleCatalog: built-in seeding and custom role management.

Built-in roles (admin, manager, member) are structurally immutable: update and
delete raise ConflictError for every caller, before any other check runs.
Custom roles may be renamed, re-permissioned, and deleted as long as no
membership still references them.

seed_defaults() is the explicit bootstrap step. It is called once by
api.container.build_services() and by `main.py init-db`; running it any number
of times, concurrently or not, leaves exactly one row per built-in name with
its original content.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from core.errors import ConflictError, NotFoundError, ValidationError
from rbac.models import Role
from rbac.store import RoleStore
from rbac.vocabulary import BUILTIN_ROLE_NAMES, BUILTIN_ROLES, normalize_matrix

logger = logging.getLogger("taskboard.rbac")

MAX_ROLE_NAME_LENGTH = 50


def _clean_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Role name must not be empty.")
    if len(cleaned) > MAX_ROLE_NAME_LENGTH:
        raise ValidationError(f"Role name must be at most {MAX_ROLE_NAME_LENGTH} characters.")
    return cleaned


class RoleCatalog:
    def __init__(self, store: RoleStore) -> None:
        self.store = store

    def seed_defaults(self) -> int:
        """Create each missing built-in role. Returns how many rows this call inserted."""
        created = 0
        for name, matrix in BUILTIN_ROLES.items():
            if self.store.insert_if_absent(name, normalize_matrix(matrix)):
                created += 1
        if created:
            logger.info("Seeded %d built-in roles", created)
        return created

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_roles(self) -> list[Role]:
        return self.store.list_roles()

    def find(self, role_id: int) -> Role | None:
        return self.store.get_by_id(role_id)

    def get(self, role_id: int) -> Role:
        role = self.store.get_by_id(role_id)
        if role is None:
            raise NotFoundError("Role not found.")
        return role

    def get_by_name(self, name: str) -> Role:
        role = self.store.get_by_name(name)
        if role is None:
            raise NotFoundError(f"Role '{name}' not found.")
        return role

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, name: str, permissions: dict) -> Role:
        cleaned = _clean_name(name)
        matrix = normalize_matrix(permissions)
        if self.store.get_by_name(cleaned) is not None:
            raise ConflictError(f"Role '{cleaned}' already exists.")
        try:
            role_id = self.store.create_role(Role(name=cleaned, permissions=matrix))
        except IntegrityError as exc:
            raise ConflictError(f"Role '{cleaned}' already exists.") from exc
        logger.info("Created role %d (%s)", role_id, cleaned)
        return self.get(role_id)

    def update(self, role_id: int, name: str | None = None, permissions: dict | None = None) -> Role:
        role = self.get(role_id)
        if role.is_builtin:
            raise ConflictError(f"Built-in role '{role.name}' cannot be modified.")

        new_name = _clean_name(name) if name is not None else None
        if new_name is not None and new_name != role.name:
            if new_name in BUILTIN_ROLE_NAMES or self.store.get_by_name(new_name) is not None:
                raise ConflictError(f"Role '{new_name}' already exists.")
        matrix = normalize_matrix(permissions) if permissions is not None else None
        try:
            self.store.update_role(role_id, name=new_name, permissions=matrix)
        except IntegrityError as exc:
            raise ConflictError(f"Role '{new_name}' already exists.") from exc
        return self.get(role_id)

    def delete(self, role_id: int) -> None:
        role = self.get(role_id)
        if role.is_builtin:
            raise ConflictError(f"Built-in role '{role.name}' cannot be deleted.")
        try:
            self.store.delete_role(role_id)
        except IntegrityError as exc:
            raise ConflictError(f"Role '{role.name}' is still assigned to project members.") from exc
        logger.info("Deleted role %d (%s)", role_id, role.name)

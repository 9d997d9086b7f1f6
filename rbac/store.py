"""
rbac/store.py -- SQLAlchemy Core persistence for roles.

Pattern: Repository + Data Mapper, same as auth/store.py.

Permission matrices are stored as JSON text. json.dumps keeps dict insertion
order, so the canonical vocabulary order survives the round trip.

insert_if_absent() is the create-if-absent primitive used for seeding:
INSERT ... ON CONFLICT (name) DO NOTHING on SQLite and PostgreSQL, so two
processes seeding at the same time cannot produce duplicate rows or overwrite
each other. Other dialects fall back to insert-and-catch-IntegrityError,
which the UNIQUE index makes equally safe.

Layer rule: no imports from api/, auth/, projects/, tasks/, or activity/.
"""

from __future__ import annotations

import json

from sqlalchemy import Column, Integer, String, Table, Text, insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core.db import metadata, now_iso
from rbac.models import Role

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False, unique=True),
    Column("permissions", Text, nullable=False),  # JSON: {resource: [actions]}
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RoleStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    def insert_if_absent(self, name: str, permissions: dict[str, list[str]]) -> bool:
        """Create the role only if no row with this name exists.

        Returns True if this call inserted the row, False if it already existed.
        """
        stamp = now_iso()
        values = {
            "name": name,
            "permissions": json.dumps(permissions),
            "created_at": stamp,
            "updated_at": stamp,
        }
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(roles).values(**values).on_conflict_do_nothing(index_elements=[roles.c.name])
        elif dialect == "sqlite":
            stmt = sqlite_insert(roles).values(**values).on_conflict_do_nothing(index_elements=[roles.c.name])
        else:
            stmt = insert(roles).values(**values)

        with self.engine.connect() as conn:
            try:
                result = conn.execute(stmt)
                conn.commit()
            except IntegrityError:
                # Another process created the same role concurrently.
                conn.rollback()
                return False
        return result.rowcount == 1

    def create_role(self, role: Role) -> int:
        """Insert a role. Raises sqlalchemy.exc.IntegrityError on a duplicate name."""
        stamp = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                roles.insert().values(
                    name=role.name,
                    permissions=json.dumps(role.permissions),
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, role_id: int) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(roles.select().where(roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(roles.select().where(roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_roles(self) -> list[Role]:
        """All roles, oldest first (built-ins are seeded first)."""
        with self.engine.connect() as conn:
            rows = conn.execute(roles.select().order_by(roles.c.id)).fetchall()
        return [_row_to_role(r) for r in rows]

    def update_role(self, role_id: int, name: str | None = None, permissions: dict | None = None) -> bool:
        """Update name and/or permissions. Raises IntegrityError on a duplicate name."""
        fields: dict = {"updated_at": now_iso()}
        if name is not None:
            fields["name"] = name
        if permissions is not None:
            fields["permissions"] = json.dumps(permissions)
        with self.engine.connect() as conn:
            result = conn.execute(roles.update().where(roles.c.id == role_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_role(self, role_id: int) -> bool:
        """Delete a role. Raises IntegrityError while memberships still reference it."""
        with self.engine.connect() as conn:
            result = conn.execute(roles.delete().where(roles.c.id == role_id))
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        permissions=json.loads(row.permissions),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )

"""
projects/models.py -- Domain dataclasses for projects and memberships.
"""

from __future__ import annotations

from dataclasses import dataclass

PROJECT_STATUSES = ("active", "archived", "completed")


@dataclass
class Project:
    """A tenant boundary. owner_id holds every permission on the project."""

    name: str
    owner_id: int
    description: str | None = None
    status: str = "active"  # "active" | "archived" | "completed"
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Membership:
    """A (project, user, role) association.

    role_name, email and display_name are filled by list queries that join the
    roles and users tables; single-row lookups leave them as None.
    """

    project_id: int
    user_id: int
    role_id: int
    id: int | None = None
    joined_at: str | None = None
    role_name: str | None = None
    email: str | None = None
    display_name: str | None = None

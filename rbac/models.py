"""
rbac/models.py -- Domain dataclass for roles.

Layer rule: no imports from api/, auth/, projects/, tasks/, or activity/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from rbac.vocabulary import BUILTIN_ROLE_NAMES


@dataclass
class Role:
    """A named permission matrix.

    permissions maps resource -> allowed actions, already canonicalised by
    rbac.vocabulary.normalize_matrix(). Built-in roles are identified by name;
    there is no separate flag column to keep in sync.
    """

    name: str
    permissions: dict[str, list[str]] = field(default_factory=dict)
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_builtin(self) -> bool:
        return self.name in BUILTIN_ROLE_NAMES

    def allows(self, resource: str, action: str) -> bool:
        return action in self.permissions.get(resource, ())

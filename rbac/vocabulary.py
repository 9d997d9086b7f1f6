"""
rbac/vocabulary.py -- The fixed resource/action vocabulary and built-in roles.

A permission matrix is an ordered mapping resource -> list of actions. Every
matrix that reaches the database has passed normalize_matrix(), so stored
matrices only ever contain known pairs, in vocabulary order, without
duplicates.
"""

from __future__ import annotations

from core.errors import ValidationError

# Insertion order is the canonical order used when matrices are stored and
# returned.
PERMISSION_VOCABULARY: dict[str, tuple[str, ...]] = {
    "project": ("create", "read", "update", "delete", "manage_members"),
    "task": ("create", "read", "update", "delete", "assign"),
    "file": ("upload", "download", "delete"),
    "message": ("send", "read", "delete"),
    "report": ("view", "export"),
    "settings": ("manage",),
}

ADMIN_ROLE = "admin"
MANAGER_ROLE = "manager"
MEMBER_ROLE = "member"

BUILTIN_ROLES: dict[str, dict[str, list[str]]] = {
    ADMIN_ROLE: {resource: list(actions) for resource, actions in PERMISSION_VOCABULARY.items()},
    MANAGER_ROLE: {
        "project": ["read", "update", "manage_members"],
        "task": ["create", "read", "update", "delete", "assign"],
        "file": ["upload", "download", "delete"],
        "message": ["send", "read"],
        "report": ["view", "export"],
        "settings": [],
    },
    MEMBER_ROLE: {
        "project": ["read"],
        "task": ["create", "read", "update"],
        "file": ["upload", "download"],
        "message": ["send", "read"],
        "report": ["view"],
        "settings": [],
    },
}

BUILTIN_ROLE_NAMES = frozenset(BUILTIN_ROLES)


def is_known_permission(resource: str, action: str) -> bool:
    return action in PERMISSION_VOCABULARY.get(resource, ())


def normalize_matrix(matrix: dict) -> dict[str, list[str]]:
    """Validate matrix against the vocabulary and return its canonical form.

    Unknown resources or actions raise ValidationError listing every offending
    pair. Resources absent from the input are omitted from the output (a
    missing key means "no actions").
    """
    if not isinstance(matrix, dict):
        raise ValidationError("Permission matrix must be a mapping of resource to actions.")
    problems: list[str] = []
    for resource, actions in matrix.items():
        if resource not in PERMISSION_VOCABULARY:
            problems.append(f"unknown resource '{resource}'")
            continue
        if not isinstance(actions, (list, tuple, set, frozenset)):
            problems.append(f"actions for '{resource}' must be a list")
            continue
        for action in actions:
            if not is_known_permission(resource, action):
                problems.append(f"unknown action '{action}' for resource '{resource}'")
    if problems:
        raise ValidationError("Invalid permission matrix.", errors=problems)

    return {
        resource: [a for a in allowed if a in set(matrix[resource])]
        for resource, allowed in PERMISSION_VOCABULARY.items()
        if resource in matrix
    }

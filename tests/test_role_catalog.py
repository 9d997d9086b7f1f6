"""Unit tests for rbac/ -- vocabulary validation and RoleCatalog.

Covers:
- seeding is idempotent: repeated runs leave exactly three built-in rows, unchanged
- seeding from several threads against one file database still yields three rows
- built-in roles refuse update and delete with ConflictError
- custom role create / rename / re-permission / delete
- duplicate names -> ConflictError; unknown resources or actions -> ValidationError
- deleting a role still assigned to a member -> ConflictError
"""

import threading

import pytest

from core.db import create_db_engine
from core.errors import ConflictError, NotFoundError, ValidationError
from rbac.catalog import RoleCatalog
from rbac.store import RoleStore
from rbac.vocabulary import BUILTIN_ROLES, is_known_permission, normalize_matrix

# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------


def test_normalize_orders_and_dedupes():
    matrix = normalize_matrix({"task": ["update", "create", "create"], "project": ["read"]})
    assert list(matrix) == ["project", "task"]
    assert matrix["task"] == ["create", "update"]


def test_normalize_collects_every_problem():
    with pytest.raises(ValidationError) as exc_info:
        normalize_matrix({"task": ["fly"], "spaceship": ["launch"], "file": "upload"})
    problems = exc_info.value.errors
    assert len(problems) == 3
    assert any("spaceship" in p for p in problems)
    assert any("fly" in p for p in problems)


def test_is_known_permission():
    assert is_known_permission("project", "manage_members")
    assert not is_known_permission("project", "upload")
    assert not is_known_permission("nope", "read")
    # normalize_matrix rejects exactly the pairs is_known_permission refuses.
    assert normalize_matrix({"project": ["manage_members"]}) == {"project": ["manage_members"]}
    with pytest.raises(ValidationError):
        normalize_matrix({"project": ["upload"]})


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


def test_seed_is_idempotent(services):
    """build_services() already seeded once; two more runs change nothing."""
    before = {r.name: (r.id, r.permissions, r.created_at) for r in services.catalog.list_roles()}
    assert services.catalog.seed_defaults() == 0
    assert services.catalog.seed_defaults() == 0
    after = {r.name: (r.id, r.permissions, r.created_at) for r in services.catalog.list_roles()}
    assert after == before
    assert sorted(after) == ["admin", "manager", "member"]
    for name, matrix in BUILTIN_ROLES.items():
        assert after[name][1] == normalize_matrix(matrix)


def test_concurrent_seeding_creates_each_role_once(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'seed.db'}")
    catalog = RoleCatalog(RoleStore(engine))
    barrier = threading.Barrier(4)
    created, failures = [], []

    def seed():
        barrier.wait()
        try:
            created.append(catalog.seed_defaults())
        except Exception as exc:  # surfaced through the assertion below
            failures.append(exc)

    threads = [threading.Thread(target=seed) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert failures == []
    assert sum(created) == 3
    assert sorted(r.name for r in catalog.list_roles()) == ["admin", "manager", "member"]
    engine.dispose()


# ---------------------------------------------------------------------------
# Built-in immutability
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("name", ["admin", "manager", "member"])
def test_builtin_roles_cannot_be_updated_or_deleted(services, name):
    role = services.catalog.get_by_name(name)
    with pytest.raises(ConflictError):
        services.catalog.update(role.id, name="renamed")
    with pytest.raises(ConflictError):
        services.catalog.update(role.id, permissions={"task": ["read"]})
    with pytest.raises(ConflictError):
        services.catalog.delete(role.id)
    assert services.catalog.get(role.id).permissions == normalize_matrix(BUILTIN_ROLES[name])


# ---------------------------------------------------------------------------
# Custom roles
# ---------------------------------------------------------------------------


def test_custom_role_lifecycle(services):
    role = services.catalog.create("  reviewer ", {"task": ["read", "update"], "project": ["read"]})
    assert role.name == "reviewer"
    assert not role.is_builtin
    assert role.allows("task", "update")
    assert not role.allows("task", "delete")

    renamed = services.catalog.update(role.id, name="auditor", permissions={"report": ["view"]})
    assert renamed.name == "auditor"
    assert renamed.permissions == {"report": ["view"]}

    services.catalog.delete(role.id)
    with pytest.raises(NotFoundError):
        services.catalog.get(role.id)


def test_duplicate_role_name_is_conflict(services):
    services.catalog.create("reviewer", {"task": ["read"]})
    with pytest.raises(ConflictError):
        services.catalog.create("reviewer", {"task": ["read"]})
    with pytest.raises(ConflictError):
        services.catalog.create("admin", {"task": ["read"]})


def test_rename_onto_existing_name_is_conflict(services):
    first = services.catalog.create("reviewer", {"task": ["read"]})
    services.catalog.create("auditor", {"report": ["view"]})
    with pytest.raises(ConflictError):
        services.catalog.update(first.id, name="auditor")
    with pytest.raises(ConflictError):
        services.catalog.update(first.id, name="manager")


def test_invalid_matrix_is_rejected(services):
    with pytest.raises(ValidationError):
        services.catalog.create("broken", {"task": ["teleport"]})
    with pytest.raises(ValidationError):
        services.catalog.create("   ", {"task": ["read"]})


def test_role_in_use_cannot_be_deleted(services, team):
    role = services.catalog.create("reviewer", {"project": ["read"], "task": ["read"]})
    services.projects.update_member_role(team.project_id, team.owner, team.member, role.id)
    with pytest.raises(ConflictError):
        services.catalog.delete(role.id)
    services.projects.remove_member(team.project_id, team.owner, team.member)
    services.catalog.delete(role.id)

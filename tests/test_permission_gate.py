"""Unit tests for rbac/gate.py -- MembershipResolver and PermissionGate.

Covers:
- the owner is authorized for every pair in the vocabulary, membership row or not
- a member is authorized exactly for the pairs in their role's matrix
- outsiders and unknown projects are denied (bool) / Forbidden or NotFound (guards)
- author override: own entry always, others only with the fallback permission
- the owner can never be removed from their project
"""

import pytest

from core.errors import ForbiddenError, NotFoundError
from rbac.vocabulary import BUILTIN_ROLES, PERMISSION_VOCABULARY

ALL_PAIRS = [(resource, action) for resource, actions in PERMISSION_VOCABULARY.items() for action in actions]


@pytest.mark.parametrize("resource,action", ALL_PAIRS)
def test_owner_bypass_for_every_pair(services, team, resource, action):
    assert services.gate.authorize(team.project_id, team.owner, resource, action)


def test_owner_bypass_survives_missing_membership_row(services, team):
    services.projects.store.remove_member(team.project_id, team.owner)
    assert services.gate.resolver.role_for(team.project_id, team.owner) is None
    for resource, action in ALL_PAIRS:
        assert services.gate.authorize(team.project_id, team.owner, resource, action)
    services.gate.require_read(team.project_id, team.owner)


@pytest.mark.parametrize("role_name", ["admin", "manager", "member"])
def test_member_authorized_iff_matrix_grants(services, team, role_name):
    user_id = getattr(team, role_name)
    matrix = BUILTIN_ROLES[role_name]
    for resource, action in ALL_PAIRS:
        expected = action in matrix.get(resource, [])
        assert services.gate.authorize(team.project_id, user_id, resource, action) is expected, (
            role_name,
            resource,
            action,
        )


def test_custom_role_follows_its_matrix(services, team):
    role = services.catalog.create("commenter", {"project": ["read"], "message": ["send"]})
    services.projects.update_member_role(team.project_id, team.owner, team.member, role.id)
    assert services.gate.authorize(team.project_id, team.member, "message", "send")
    assert not services.gate.authorize(team.project_id, team.member, "task", "create")


def test_outsider_denied_everywhere(services, team):
    for resource, action in ALL_PAIRS:
        assert not services.gate.authorize(team.project_id, team.outsider, resource, action)
    assert not services.gate.can_read(team.project_id, team.outsider)
    with pytest.raises(ForbiddenError):
        services.gate.require_read(team.project_id, team.outsider)


def test_unknown_project(services, team):
    assert not services.gate.authorize(9999, team.owner, "project", "read")
    with pytest.raises(NotFoundError):
        services.gate.require(9999, team.owner, "project", "read")


def test_require_message_names_the_permission(services, team):
    with pytest.raises(ForbiddenError) as exc_info:
        services.gate.require(team.project_id, team.member, "project", "manage_members")
    assert exc_info.value.message == "You do not have permission to manage members projects."


def test_author_override(services, team):
    # A plain member may touch their own entry but not someone else's.
    services.gate.require_author_or(team.project_id, team.member, team.member, "task", "delete")
    with pytest.raises(ForbiddenError):
        services.gate.require_author_or(team.project_id, team.member, team.manager, "task", "delete")
    # The fallback permission covers other people's entries.
    services.gate.require_author_or(team.project_id, team.manager, team.member, "task", "delete")
    # Authorship does not help once read access is gone.
    with pytest.raises(ForbiddenError):
        services.gate.require_author_or(team.project_id, team.outsider, team.outsider, "task", "update")


@pytest.mark.parametrize("actor", ["owner", "admin", "manager"])
def test_owner_cannot_be_removed(services, team, actor):
    with pytest.raises(ForbiddenError) as exc_info:
        services.projects.remove_member(team.project_id, getattr(team, actor), team.owner)
    assert exc_info.value.message == "Cannot remove the project owner."
    assert services.gate.require_read(team.project_id, team.owner).owner_id == team.owner


def test_owner_removal_guard_precedes_permission_check(services, team):
    """Even a caller without manage_members learns the owner is not removable."""
    with pytest.raises(ForbiddenError) as exc_info:
        services.projects.remove_member(team.project_id, team.member, team.owner)
    assert exc_info.value.message == "Cannot remove the project owner."

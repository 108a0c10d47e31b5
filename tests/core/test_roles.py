"""Role Resolution — independent flags and fixed-priority primary role."""

from rostergraph.core.domain_types import EdgeType, Role
from rostergraph.core.roles import RoleFlags


def test_owner_and_teacher_resolves_owner_keeping_teacher_flag():
    flags = RoleFlags.from_edge_types({EdgeType.IS_OWNER, EdgeType.IS_TEACHER})
    assert flags.primary_role is Role.OWNER
    assert flags.is_teacher
    assert flags.is_owner


def test_priority_teacher_over_coordinator_over_student():
    assert RoleFlags(is_teacher=True, is_coord=True).primary_role is Role.TEACHER
    assert RoleFlags(is_coord=True, is_student=True).primary_role is Role.COORDINATOR
    assert RoleFlags(is_student=True).primary_role is Role.STUDENT


def test_no_edges_is_none():
    flags = RoleFlags.from_edge_types(set())
    assert flags.primary_role is Role.NONE
    assert not flags.any


def test_accepts_raw_edge_type_strings():
    flags = RoleFlags.from_edge_types({"is_coord"})
    assert flags.is_coord


def test_permissions():
    assert RoleFlags(is_teacher=True).can_sync
    assert RoleFlags(is_owner=True).can_sync
    assert not RoleFlags(is_coord=True).can_sync
    assert RoleFlags(is_coord=True).can_view_stats
    assert not RoleFlags(is_student=True).can_view_stats

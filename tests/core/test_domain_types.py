"""Domain Types — verifies entity keys, edge directions and role tables.

Tests:
    - entity_key / split_key are inverse
    - Each roster class owns exactly one edge type
    - Role priority and role edges cover the same four roles
"""

import pytest

from rostergraph.core.domain_types import (
    EdgeType, EntityKind, ROLE_EDGES, ROLE_PRIORITY, Role, RosterClass,
    entity_key, split_key,
)


def test_entity_key_is_kind_qualified():
    assert entity_key(EntityKind.USER, "1234") == "user:1234"
    assert entity_key(EntityKind.COURSE, "c-1") == "course:c-1"


def test_split_key_inverts_entity_key():
    assert split_key(entity_key(EntityKind.CELL, "abc")) == (EntityKind.CELL, "abc")


def test_split_key_keeps_colons_in_external_id():
    assert split_key("work:a:b") == (EntityKind.WORK, "a:b")


@pytest.mark.parametrize("bad", ["user", "user:", "planet:1"])
def test_split_key_rejects_malformed(bad):
    with pytest.raises(ValueError):
        split_key(bad)


def test_roster_classes_map_to_membership_edges():
    assert RosterClass.TEACHER.edge_type is EdgeType.IS_TEACHER
    assert RosterClass.STUDENT.edge_type is EdgeType.IS_STUDENT


def test_role_priority_matches_role_edges():
    assert ROLE_PRIORITY[0] is Role.OWNER
    assert set(ROLE_PRIORITY) == set(ROLE_EDGES)
    assert Role.NONE not in ROLE_EDGES


def test_enums_serialize_to_value():
    assert EdgeType.IS_FROM.value == "is_from"
    assert EntityKind.TOKEN == "token"

"""Authorization Resolver — role flags, primary role and owned cell from edges."""

import pytest

from rostergraph.core.domain_types import EdgeType, EntityKind, Role, entity_key
from rostergraph.core.errors import ForbiddenError, ResourceNotFoundError
from rostergraph.services.authorization import AuthorizationResolver


@pytest.fixture
def resolver(store):
    return AuthorizationResolver(store)


async def test_owner_and_teacher_keeps_both_flags(seed, resolver):
    await seed.course("c1", owner="u1")
    await seed.role("u1", "c1", EdgeType.IS_TEACHER)

    resolution = await resolver.resolve_role("u1", "c1")

    assert resolution.primary_role is Role.OWNER
    assert resolution.flags.is_teacher
    assert resolution.owned_cell is None


async def test_no_edges_resolves_none(seed, resolver):
    await seed.course("c1")
    resolution = await resolver.resolve_role("stranger", "c1")
    assert resolution.primary_role is Role.NONE
    assert resolution.to_dict()["owned_cell"] is None


async def test_teacher_owned_cell_with_students(seed, store, resolver):
    await seed.course("c1")
    await seed.role("t1", "c1", EdgeType.IS_TEACHER)
    await seed.user("s1", name="Sam")
    cell = await store.upsert_entity(EntityKind.CELL, "k1", {"name": "Cell K"})
    await store.relate(cell, EdgeType.IS_FROM, entity_key(EntityKind.COURSE, "c1"))
    await store.relate(cell, EdgeType.BELONGS_TO, entity_key(EntityKind.USER, "t1"))
    await store.relate(entity_key(EntityKind.USER, "s1"), EdgeType.IS_IN, cell)

    resolution = await resolver.resolve_role("t1", "c1")

    owned = resolution.owned_cell
    assert owned.id == "k1"
    assert owned.name == "Cell K"
    assert [s["name"] for s in owned.students] == ["Sam"]
    assert owned.teacher["id"] == "t1"


async def test_cell_in_other_course_is_not_owned(seed, store, resolver):
    await seed.course("c1")
    await seed.course("c2")
    await seed.role("t1", "c1", EdgeType.IS_TEACHER)
    cell = await store.upsert_entity(EntityKind.CELL, "k2", {"name": "Elsewhere"})
    await store.relate(cell, EdgeType.IS_FROM, entity_key(EntityKind.COURSE, "c2"))
    await store.relate(cell, EdgeType.BELONGS_TO, entity_key(EntityKind.USER, "t1"))

    resolution = await resolver.resolve_role("t1", "c1")

    assert resolution.owned_cell is None


async def test_require_flags_checks_course_before_role(resolver):
    with pytest.raises(ResourceNotFoundError):
        await resolver.require_flags("u1", "missing", "owner", lambda f: f.is_owner)


async def test_require_flags_forbidden(seed, resolver):
    await seed.course("c1")
    await seed.role("s1", "c1", EdgeType.IS_STUDENT)
    with pytest.raises(ForbiddenError):
        await resolver.require_flags("s1", "c1", "owner or teacher", lambda f: f.can_sync)

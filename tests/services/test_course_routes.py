"""Course Routes — start, listing, detail, roster and coursework sync, roles, stats.

Invariants verified:
    - start is idempotent for the owner and a conflict for anyone else
    - sync returns the summary; 404 for unknown course before 403 for a non-member
    - role assignment conflicts when a teacher or coordinator edge already exists
    - detail requires some role; stats require owner, teacher or coordinator
"""

import pytest

from rostergraph.core.domain_types import EdgeType, EntityKind, entity_key
from rostergraph.core.graph_types import EdgePattern

COURSE = entity_key(EntityKind.COURSE, "c1")


@pytest.fixture
def remote_course(roster_provider):
    roster_provider.courses["c1"] = {
        "id": "c1", "name": "Biology", "section": "A", "state": "ACTIVE", "link": None,
    }


async def test_start_course_creates_course_and_owner(client, login, remote_course, store):
    login("u1")
    res = await client.post("/api/v1/courses/start", json={"courseId": "c1"})

    assert res.status_code == 200
    assert res.json()["course"]["name"] == "Biology"
    owners = await store.query(EdgePattern.of(EdgeType.IS_OWNER, target=COURSE))
    assert [o.source for o in owners] == [entity_key(EntityKind.USER, "u1")]
    assert (await store.get_entity(entity_key(EntityKind.USER, "u1"))).fields["name"] == "U1"


async def test_start_course_twice_by_owner_keeps_created_at(client, login, remote_course, store):
    login("u1")
    first = await client.post("/api/v1/courses/start", json={"courseId": "c1"})
    second = await client.post("/api/v1/courses/start", json={"courseId": "c1"})

    assert second.status_code == 200
    assert second.json()["course"]["created_at"] == first.json()["course"]["created_at"]
    assert len(await store.query(EdgePattern.of(EdgeType.IS_OWNER, target=COURSE))) == 1


async def test_start_course_by_other_user_conflicts(client, login, remote_course, seed):
    await seed.course("c1", owner="u1")
    login("u2")
    res = await client.post("/api/v1/courses/start", json={"courseId": "c1"})
    assert res.status_code == 409


async def test_start_unknown_remote_course_is_500(client, login):
    login("u1")
    res = await client.post("/api/v1/courses/start", json={"courseId": "missing"})
    assert res.status_code == 500


async def test_list_courses_annotates_local_state(client, login, remote_course, roster_provider, seed):
    roster_provider.courses["c2"] = {"id": "c2", "name": "Chemistry"}
    await seed.course("c1", owner="u1")
    login("u1")

    res = await client.get("/api/v1/courses")

    assert res.status_code == 200
    by_id = {c["id"]: c for c in res.json()["courses"]}
    assert by_id["c1"]["synced"] is True
    assert by_id["c1"]["role"]["primary_role"] == "owner"
    assert by_id["c2"]["synced"] is False
    assert by_id["c2"]["role"]["primary_role"] == "none"


async def test_sync_route_returns_summary(client, login, seed, roster_provider):
    await seed.course("c1", owner="u1")
    roster_provider.set_roster("c1", teachers=["t1"], students=["a", "b"])
    login("u1")

    res = await client.post("/api/v1/courses/c1/sync")

    assert res.status_code == 200
    body = res.json()
    assert body["ok"] is True
    assert {c["roster_class"]: c["created"] for c in body["classes"]} == {"teacher": 1, "student": 2}


async def test_sync_route_unknown_course_404(client, login):
    login("u1")
    res = await client.post("/api/v1/courses/nope/sync")
    assert res.status_code == 404


async def test_sync_route_non_member_403(client, login, seed):
    await seed.course("c1", owner="u1")
    login("u2")
    res = await client.post("/api/v1/courses/c1/sync")
    assert res.status_code == 403


async def test_sync_route_upstream_failure_500(client, login, seed, roster_provider):
    await seed.course("c1", owner="u1")
    roster_provider.fail_on.add("list_teachers")
    login("u1")
    res = await client.post("/api/v1/courses/c1/sync")
    assert res.status_code == 500
    assert res.json()["error"]["category"] == "external_api"


async def test_role_assignment_and_conflict(client, login, seed, store):
    await seed.course("c1", owner="owner")
    login("u2")

    first = await client.post("/api/v1/courses/c1/role", json={"role": "coordinator"})
    second = await client.post("/api/v1/courses/c1/role", json={"role": "teacher"})

    assert first.status_code == 200
    assert first.json()["role"]["is_coord"] is True
    assert second.status_code == 409
    coords = await store.query(EdgePattern.of(EdgeType.IS_COORD, target=COURSE))
    assert [c.source for c in coords] == [entity_key(EntityKind.USER, "u2")]


async def test_role_invalid_value_is_400(client, login, seed):
    await seed.course("c1", owner="owner")
    login("u2")
    res = await client.post("/api/v1/courses/c1/role", json={"role": "owner"})
    assert res.status_code == 400


async def test_detail_lists_roster_and_caller_role(client, login, seed):
    await seed.course("c1", owner="owner")
    await seed.role("t1", "c1", EdgeType.IS_TEACHER)
    await seed.role("s1", "c1", EdgeType.IS_STUDENT)
    login("t1")

    res = await client.get("/api/v1/courses/c1")

    assert res.status_code == 200
    body = res.json()
    assert body["owner"]["id"] == "owner"
    assert [t["id"] for t in body["teachers"]] == ["t1"]
    assert [s["id"] for s in body["students"]] == ["s1"]
    assert body["role"]["primary_role"] == "teacher"
    assert body["role"]["owned_cell"] is None
    assert body["cells"] == []


async def test_detail_without_role_is_403(client, login, seed):
    await seed.course("c1", owner="owner")
    login("stranger")
    res = await client.get("/api/v1/courses/c1")
    assert res.status_code == 403


async def test_coursework_sync_and_stats(client, login, seed, roster_provider, store):
    await seed.course("c1", owner="owner")
    await seed.role("s1", "c1", EdgeType.IS_STUDENT)
    await seed.role("s2", "c1", EdgeType.IS_STUDENT)
    roster_provider.course_work["c1"] = [
        {"id": "w1", "title": "Essay", "max_points": 10},
        {"title": "no id"},
    ]
    roster_provider.submissions[("c1", "w1")] = [
        {"user_id": "s1", "state": "TURNED_IN", "grade": 9, "late": False},
        {"user_id": "s2", "state": "CREATED"},
        {"user_id": "unknown", "state": "TURNED_IN"},
    ]
    login("owner")

    res = await client.post("/api/v1/courses/c1/coursework/sync")

    assert res.status_code == 200
    body = res.json()
    assert body["works_synced"] == 1
    assert body["works_skipped"] == 1
    assert body["submissions_written"] == 2
    assert body["submissions_skipped"] == 1
    work = entity_key(EntityKind.WORK, "w1")
    assert [r.source for r in await store.query(EdgePattern.of(EdgeType.IS_FROM, target=COURSE))] == [work]

    stats = await client.get("/api/v1/courses/c1/stats")

    assert stats.status_code == 200
    data = stats.json()
    assert data["total_students"] == 2
    assert data["total_works"] == 1
    assert data["overall_completion_rate"] == 50.0
    assert data["overall_average_grade"] == 90.0


async def test_coursework_resync_removes_stale_submissions(client, login, seed, roster_provider, store):
    await seed.course("c1", owner="owner")
    await seed.role("s1", "c1", EdgeType.IS_STUDENT)
    await seed.role("s2", "c1", EdgeType.IS_STUDENT)
    roster_provider.course_work["c1"] = [{"id": "w1", "title": "Essay"}]
    roster_provider.submissions[("c1", "w1")] = [
        {"user_id": "s1", "state": "CREATED"}, {"user_id": "s2", "state": "CREATED"},
    ]
    login("owner")
    await client.post("/api/v1/courses/c1/coursework/sync")
    roster_provider.submissions[("c1", "w1")] = [{"user_id": "s1", "state": "TURNED_IN"}]

    res = await client.post("/api/v1/courses/c1/coursework/sync")

    assert res.json()["submissions_removed"] == 1
    rows = await store.query(EdgePattern.of(EdgeType.IS_ASSIGNED, target=entity_key(EntityKind.WORK, "w1")))
    assert [(r.source, r.attrs["state"]) for r in rows] == [(entity_key(EntityKind.USER, "s1"), "TURNED_IN")]


async def test_stats_forbidden_for_student(client, login, seed):
    await seed.course("c1", owner="owner")
    await seed.role("s1", "c1", EdgeType.IS_STUDENT)
    login("s1")
    res = await client.get("/api/v1/courses/c1/stats")
    assert res.status_code == 403


async def test_health_liveness(client):
    res = await client.get("/api/v1/health/")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"


async def test_health_readiness_checks_database(client):
    res = await client.get("/api/v1/health/ready")
    assert res.status_code == 200
    assert res.json()["checks"]["database"] == "healthy"

"""Reconciliation — set-difference planning and roster normalization.

Tests cover:
    - plan_edges splits current/target into delete, create, unchanged
    - An empty target plans deletion of every current edge
    - Malformed records are skipped and counted, duplicates collapse
    - Submission normalization validates state and grade
"""

from rostergraph.core.domain_types import SubmissionState
from rostergraph.core.reconcile import (
    normalize_roster, normalize_submissions, plan_edges,
)


def test_plan_moves_ab_to_bc():
    plan = plan_edges({"user:a", "user:b"}, {"user:b", "user:c"})
    assert plan.to_delete == {"user:a"}
    assert plan.to_create == {"user:c"}
    assert plan.unchanged == {"user:b"}
    assert not plan.is_noop


def test_plan_for_same_sets_is_noop():
    plan = plan_edges({"user:a"}, {"user:a"})
    assert plan.is_noop
    assert plan.unchanged == {"user:a"}


def test_empty_target_deletes_everything():
    plan = plan_edges({"user:a", "user:b"}, set())
    assert plan.to_delete == {"user:a", "user:b"}
    assert plan.to_create == frozenset()


def test_normalize_roster_skips_missing_id_or_name():
    roster = normalize_roster([
        {"id": "1", "name": "Ana"},
        {"id": "", "name": "Nobody"},
        {"id": "2", "name": "   "},
        {"name": "No id"},
        "not a record",
    ])
    assert [m.external_id for m in roster.members] == ["1"]
    assert roster.skipped == 4


def test_normalize_roster_collapses_duplicates_last_wins():
    roster = normalize_roster([
        {"id": "1", "name": "Ana", "email": "old@x.org"},
        {"id": "1", "name": "Ana B", "email": "new@x.org"},
    ])
    assert len(roster.members) == 1
    assert roster.members[0].name == "Ana B"
    assert roster.keys == {"user:1"}


def test_roster_member_profile_fields():
    member = normalize_roster([
        {"id": "7", "name": " Bo ", "email": "bo@x.org", "photo_url": "//p.png"},
    ]).members[0]
    assert member.key == "user:7"
    assert member.profile_fields() == {
        "name": "Bo", "email": "bo@x.org", "photo_url": "//p.png",
    }


def test_normalize_submissions_validates_state():
    valid, skipped = normalize_submissions([
        {"user_id": "1", "state": "TURNED_IN", "grade": 8, "late": True},
        {"user_id": "2", "state": "RECLAIMED_BY_STUDENT"},
        {"state": "NEW"},
    ])
    assert skipped == 2
    assert valid[0].state is SubmissionState.TURNED_IN
    assert valid[0].edge_attrs() == {
        "state": "TURNED_IN", "grade": 8.0, "late": True, "link": None,
    }


def test_normalize_submissions_drops_non_numeric_grade():
    valid, _ = normalize_submissions([{"user_id": "1", "state": "NEW", "grade": "A+"}])
    assert valid[0].grade is None

"""Reconciliation — pure set-difference planning for one roster class.

Invariants:
    - to_delete = current - target, to_create = target - current, unchanged = current & target
    - An empty target set is valid and plans deletion of every current edge
    - Records missing an id or a name are skipped and reported, never fatal
    - Duplicate ids in one roster collapse to one member (last record wins)

Design Decisions:
    - Plans are computed over entity keys, not ORM rows: the store applies them as one batch
    - Normalization lives here so the engine and the coursework sync share one validation rule
"""

from dataclasses import dataclass, field

from rostergraph.core.domain_types import EntityKey, EntityKind, SubmissionState, entity_key


@dataclass(frozen=True)
class RosterMember:
    """A validated roster record."""
    external_id: str
    name: str
    email: str | None = None
    photo_url: str | None = None

    @property
    def key(self) -> EntityKey:
        return entity_key(EntityKind.USER, self.external_id)

    def profile_fields(self) -> dict:
        return {
            "name": self.name,
            "email": self.email,
            "photo_url": self.photo_url,
        }


@dataclass(frozen=True)
class EdgePlan:
    """Edge writes needed to move the store from current to target."""
    to_delete: frozenset[EntityKey]
    to_create: frozenset[EntityKey]
    unchanged: frozenset[EntityKey]

    @property
    def is_noop(self) -> bool:
        return not self.to_delete and not self.to_create


@dataclass
class NormalizedRoster:
    members: list[RosterMember] = field(default_factory=list)
    skipped: int = 0

    @property
    def keys(self) -> frozenset[EntityKey]:
        return frozenset(m.key for m in self.members)


def _clean(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_roster(records: list[dict]) -> NormalizedRoster:
    """Validate raw provider records into RosterMembers."""
    result = NormalizedRoster()
    by_id: dict[str, RosterMember] = {}
    for record in records:
        if not isinstance(record, dict):
            result.skipped += 1
            continue
        external_id = _clean(record.get("id"))
        name = _clean(record.get("name"))
        if not external_id or not name:
            result.skipped += 1
            continue
        by_id[external_id] = RosterMember(
            external_id=external_id,
            name=name,
            email=_clean(record.get("email")),
            photo_url=_clean(record.get("photo_url")),
        )
    result.members = list(by_id.values())
    return result


def plan_edges(
    current: set[EntityKey] | frozenset[EntityKey],
    target: set[EntityKey] | frozenset[EntityKey],
) -> EdgePlan:
    current, target = frozenset(current), frozenset(target)
    return EdgePlan(
        to_delete=current - target,
        to_create=target - current,
        unchanged=current & target,
    )


@dataclass(frozen=True)
class SubmissionRecord:
    """A validated submission, ready to become an is_assigned edge."""
    user_id: str
    state: SubmissionState
    grade: float | None = None
    late: bool = False
    link: str | None = None

    @property
    def user_key(self) -> EntityKey:
        return entity_key(EntityKind.USER, self.user_id)

    def edge_attrs(self) -> dict:
        return {
            "state": self.state.value,
            "grade": self.grade,
            "late": self.late,
            "link": self.link,
        }


def normalize_submissions(records: list[dict]) -> tuple[list[SubmissionRecord], int]:
    """Validate raw submissions. Returns (valid, skipped_count)."""
    valid: dict[str, SubmissionRecord] = {}
    skipped = 0
    for record in records:
        user_id = _clean(record.get("user_id")) if isinstance(record, dict) else None
        try:
            state = SubmissionState(record.get("state"))
        except (ValueError, AttributeError):
            state = None
        if not user_id or state is None:
            skipped += 1
            continue
        grade = record.get("grade")
        valid[user_id] = SubmissionRecord(
            user_id=user_id,
            state=state,
            grade=float(grade) if isinstance(grade, (int, float)) else None,
            late=bool(record.get("late", False)),
            link=_clean(record.get("link")),
        )
    return list(valid.values()), skipped

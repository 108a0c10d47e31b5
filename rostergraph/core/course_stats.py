"""Course Stats — pure aggregation of is_assigned edges over cells and works.

Invariants:
    - Only submissions to the course's own works are counted
    - A submission counts as completed when its state is TURNED_IN or RETURNED
    - Grades are normalized to 0-100 using the work's max_points when it has one
    - Rates and averages are rounded to 2 decimals; empty denominators yield 0
    - Never raises on missing attrs — unknown fields default to empty

Design Decisions:
    - Overall figures are computed from every course student, not summed from cells:
      students outside any cell still count
"""

from dataclasses import dataclass, field

from rostergraph.core.domain_types import SubmissionState

COMPLETED_STATES = {SubmissionState.TURNED_IN.value, SubmissionState.RETURNED.value}

GRADE_BANDS = (
    ("excellent", "90-100", 90.0),
    ("good", "80-89", 80.0),
    ("satisfactory", "70-79", 70.0),
    ("needs_improvement", "<70", float("-inf")),
)


@dataclass
class CellInput:
    cell_id: str
    name: str
    teacher_name: str | None
    student_keys: set[str]


@dataclass
class SubmissionInput:
    user_key: str
    work_key: str
    attrs: dict


@dataclass
class _Tally:
    expected: int = 0
    completed: int = 0
    graded: int = 0
    late: int = 0
    grade_total: float = 0.0
    bands: dict[str, int] = field(
        default_factory=lambda: {name: 0 for name, _, _ in GRADE_BANDS},
    )

    def add(self, attrs: dict, max_points: float | None) -> None:
        if attrs.get("state") in COMPLETED_STATES:
            self.completed += 1
        if attrs.get("late"):
            self.late += 1
        grade = _normalize_grade(attrs.get("grade"), max_points)
        if grade is not None:
            self.graded += 1
            self.grade_total += grade
            self.bands[_band_for(grade)] += 1

    def summary(self) -> dict:
        return {
            "completion_rate": _pct(self.completed, self.expected),
            "average_grade": round(self.grade_total / self.graded, 2) if self.graded else 0.0,
            "late_submissions": self.late,
            "work_stats": {
                "total": self.expected,
                "submitted": self.completed,
                "graded": self.graded,
                "pending": max(self.expected - self.completed, 0),
            },
            "grade_distribution": dict(self.bands),
        }


def _pct(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def _normalize_grade(grade, max_points: float | None) -> float | None:
    if not isinstance(grade, (int, float)) or isinstance(grade, bool):
        return None
    if max_points:
        return grade / max_points * 100
    return float(grade)


def _band_for(grade: float) -> str:
    for name, _, floor in GRADE_BANDS:
        if grade >= floor:
            return name
    return GRADE_BANDS[-1][0]


def _tally(
    student_keys: set[str],
    works: dict[str, float | None],
    by_student: dict[str, list[SubmissionInput]],
) -> _Tally:
    tally = _Tally(expected=len(student_keys) * len(works))
    for key in student_keys:
        for sub in by_student.get(key, []):
            tally.add(sub.attrs, works[sub.work_key])
    return tally


def compute_course_stats(
    course_student_keys: set[str],
    works: dict[str, float | None],
    cells: list[CellInput],
    submissions: list[SubmissionInput],
) -> dict:
    """Aggregate per-cell and course-wide stats. works maps work key -> max_points."""
    by_student: dict[str, list[SubmissionInput]] = {}
    for sub in submissions:
        if sub.work_key in works:
            by_student.setdefault(sub.user_key, []).append(sub)

    cell_stats = []
    for cell in cells:
        tally = _tally(cell.student_keys, works, by_student)
        cell_stats.append({
            "cell_id": cell.cell_id,
            "cell_name": cell.name,
            "teacher_name": cell.teacher_name,
            "student_count": len(cell.student_keys),
            **tally.summary(),
        })

    overall = _tally(course_student_keys, works, by_student).summary()
    return {
        "total_students": len(course_student_keys),
        "total_works": len(works),
        "overall_completion_rate": overall["completion_rate"],
        "overall_average_grade": overall["average_grade"],
        "cells": cell_stats,
        "grade_distribution": [
            {"range": label, "band": name, "count": overall["grade_distribution"][name]}
            for name, label, _ in GRADE_BANDS
        ],
    }

"""Course Schemas — request bodies for course, role and cell endpoints.

Invariants:
    - CellRequest accepts the client's camelCase `cellName` (and `cell_name`)
    - CellRequest.students: ids only, each non-empty, at most 500
    - RoleRequest.role limited to the two self-assignable roles

Design Decisions:
    - Literal over Role enum for RoleRequest: the 400 lists the allowed values
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StartCourseRequest(BaseModel):
    course_id: str = Field(min_length=1, max_length=255, alias="courseId")

    model_config = ConfigDict(populate_by_name=True)


class RoleRequest(BaseModel):
    role: Literal["teacher", "coordinator"]


class CellRequest(BaseModel):
    """Replacement cell: name plus the student ids it holds."""
    cell_name: str = Field(min_length=1, max_length=200, alias="cellName")
    students: list[str] = Field(default_factory=list, max_length=500)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("cell_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("cellName cannot be empty or whitespace")
        return v

    @field_validator("students")
    @classmethod
    def non_empty_ids(cls, v: list[str]) -> list[str]:
        cleaned = [s.strip() for s in v]
        if any(not s for s in cleaned):
            raise ValueError("student ids cannot be empty")
        return cleaned


class CellResponse(BaseModel):
    cell_id: str

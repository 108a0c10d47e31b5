"""Auth Schemas — login body and session-facing responses.

Invariants:
    - TokenRequest.code: non-empty after stripping
    - UserOut mirrors the Identity snapshot, never credentials
"""

from pydantic import BaseModel, Field, field_validator


class TokenRequest(BaseModel):
    """Authorization code from the client-side OAuth flow."""
    code: str = Field(min_length=1, max_length=4096)

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("code cannot be empty or whitespace")
        return v


class UserOut(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None
    picture: str | None = None


class TokenResponse(BaseModel):
    user: UserOut
    session_created: str


class MeResponse(BaseModel):
    user: UserOut

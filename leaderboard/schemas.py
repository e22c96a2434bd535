from datetime import datetime

from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel

from leaderboard.models.user import normalize_semester


class CamelModel(BaseModel):
    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class PublicUserResponse(CamelModel):
    """User fields safe to show to anonymous callers."""

    id: int
    student_number: str
    name: str | None = None
    role: str
    public_id: str
    semester: int | None = None
    is_active: bool = True
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator('semester', mode='before')
    @classmethod
    def unpack_semester(cls, value: int | None) -> int | None:
        return normalize_semester(value)


class UserResponse(PublicUserResponse):
    email: str | None = None


class ScoreResponse(CamelModel):
    id: int
    project_number: int
    score: float
    evaluated_at: datetime
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = None
    has_file: bool = False


class NoticeResponse(CamelModel):
    id: int
    message: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

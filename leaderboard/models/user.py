"""User model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, case, cast

from leaderboard.core import config
from leaderboard.core.clock import seoul_now
from leaderboard.database import Base


class User(Base):
    """Represents a registered student or administrator."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    student_number = Column(String(8), unique=True, index=True, nullable=False)
    email = Column(String, unique=True, nullable=True)
    password_hash = Column(String, nullable=False)
    name = Column(String)
    public_id = Column(String, unique=True, index=True, nullable=False)
    role = Column(String, nullable=False, default="user")  # user/admin
    semester = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=seoul_now)
    updated_at = Column(DateTime, nullable=False, default=seoul_now, onupdate=seoul_now)

    @property
    def cohort_year(self) -> int:
        return normalize_semester(self.semester)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def normalize_semester(value: int | None) -> int | None:
    """Recover the cohort year from a stored semester value.

    Older rows pack the value as ``year * 100 + term``; anything at or above
    the threshold is unpacked with integer division.
    """
    if value is None:
        return None
    if value >= config.PACKED_SEMESTER_THRESHOLD:
        return value // 100
    return value


def semester_year(column=User.semester):
    """SQL counterpart of ``normalize_semester`` for use inside queries."""
    return case(
        (column >= config.PACKED_SEMESTER_THRESHOLD, cast(column // 100, Integer)),
        else_=column,
    )

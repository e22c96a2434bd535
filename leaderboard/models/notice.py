"""Notice model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from leaderboard.core.clock import seoul_now
from leaderboard.database import Base


class Notice(Base):
    """Represents a banner message shown on the leaderboard."""
    __tablename__ = "notices"

    id = Column(Integer, primary_key=True)
    message = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=seoul_now)
    updated_at = Column(DateTime, nullable=False, default=seoul_now, onupdate=seoul_now)

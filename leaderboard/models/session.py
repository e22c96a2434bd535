"""Login session model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from leaderboard.core.clock import seoul_now
from leaderboard.database import Base


class UserSession(Base):
    """Represents an opaque session token issued at login."""
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_token = Column(String, unique=True, index=True, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=seoul_now)

"""Score submission model definitions."""

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String

from leaderboard.core.clock import seoul_now
from leaderboard.database import Base


class Score(Base):
    """Represents one evaluated project submission."""
    __tablename__ = "scores"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_number = Column(Integer, nullable=False)
    score = Column(Float, nullable=False)
    file_path = Column(String)
    file_name = Column(String)
    file_type = Column(String)
    file_size = Column(Integer)
    evaluated_at = Column(DateTime, nullable=False, default=seoul_now)

    @property
    def has_file(self) -> bool:
        return bool(self.file_path)

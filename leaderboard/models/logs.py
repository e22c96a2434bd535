"""Audit log model definitions."""

from sqlalchemy import Column, DateTime, Float, Integer, String, Text

from leaderboard.core.clock import seoul_now
from leaderboard.database import Base


class RequestLog(Base):
    """One API call, keyed by ``user:<id>`` or ``ip:<address>``."""
    __tablename__ = "request_logs"

    id = Column(Integer, primary_key=True)
    source = Column(String, nullable=False)
    path = Column(String, nullable=False)
    method = Column(String, nullable=False)
    status = Column(Integer)
    # "metadata" is reserved on declarative classes.
    metadata_json = Column("metadata", Text)
    ip_address = Column(String)
    created_at = Column(DateTime, nullable=False, default=seoul_now, index=True)


class EvaluationLog(Base):
    """One score mutation."""
    __tablename__ = "evaluation_logs"

    id = Column(Integer, primary_key=True)
    actor_user_id = Column(Integer)
    action = Column(String, nullable=False)  # create/delete
    score_id = Column(Integer)
    target_user_id = Column(Integer)
    project_number = Column(Integer)
    score = Column(Float)
    payload = Column(Text)
    created_at = Column(DateTime, nullable=False, default=seoul_now, index=True)

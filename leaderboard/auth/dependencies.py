import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leaderboard.auth import sessions
from leaderboard.core import config
from leaderboard.database import get_db
from leaderboard.models.user import User
from leaderboard.services.audit import RequestAuditor

logger = logging.getLogger(__name__)

UNAUTHORIZED_DETAIL = "Unauthorized"
FORBIDDEN_DETAIL = "접근 권한이 없습니다."


def get_request_auditor(request: Request, db: Session = Depends(get_db)) -> RequestAuditor:
    return RequestAuditor(db, request)


def get_session_user(request: Request, db: Session = Depends(get_db)) -> User | None:
    """Resolve the session cookie to a user, sweeping expired sessions first."""
    try:
        sessions.cleanup_expired_sessions(db)
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Expired session sweep failed", exc_info=True)

    session_token = request.cookies.get(config.SESSION_COOKIE_NAME)
    if not session_token:
        return None
    return sessions.get_user_by_session_token(db, session_token)


def require_session_user(
    user: User | None = Depends(get_session_user),
    audit: RequestAuditor = Depends(get_request_auditor),
) -> User:
    if user is None:
        audit(status.HTTP_401_UNAUTHORIZED, reason="unauthorized")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED_DETAIL)
    audit.user_id = user.id
    return user


def require_admin(
    user: User = Depends(require_session_user),
    audit: RequestAuditor = Depends(get_request_auditor),
) -> User:
    if user.role != "admin":
        audit(status.HTTP_403_FORBIDDEN, reason="forbidden")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=FORBIDDEN_DETAIL)
    return user

import uuid
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from leaderboard.core import config
from leaderboard.core.clock import seoul_now
from leaderboard.models.session import UserSession
from leaderboard.models.user import User


def create_session(db: Session, user_id: int, ttl_days: int | None = None) -> tuple[str, datetime]:
    ttl = ttl_days or config.SESSION_TTL_DAYS
    session_token = str(uuid.uuid4())
    expires_at = seoul_now() + timedelta(days=ttl)
    db.add(UserSession(user_id=user_id, session_token=session_token, expires_at=expires_at))
    db.commit()
    return session_token, expires_at


def cleanup_expired_sessions(db: Session) -> int:
    deleted = db.query(UserSession).filter(UserSession.expires_at <= seoul_now()).delete(
        synchronize_session=False
    )
    db.commit()
    return deleted


def revoke_sessions_for_user(db: Session, user_id: int) -> int:
    deleted = db.query(UserSession).filter(UserSession.user_id == user_id).delete(
        synchronize_session=False
    )
    db.commit()
    return deleted


def delete_session(db: Session, session_token: str) -> None:
    db.query(UserSession).filter(UserSession.session_token == session_token).delete(
        synchronize_session=False
    )
    db.commit()


def get_user_by_session_token(db: Session, session_token: str) -> User | None:
    if not session_token:
        return None
    return (
        db.query(User)
        .join(UserSession, UserSession.user_id == User.id)
        .filter(
            UserSession.session_token == session_token,
            UserSession.expires_at > seoul_now(),
            User.is_active.is_(True),
        )
        .first()
    )


def establish_user_session(db: Session, user: User) -> tuple[str, datetime]:
    """Replace any live session for ``user`` with a fresh one."""
    cleanup_expired_sessions(db)
    revoke_sessions_for_user(db, user.id)
    user.last_login_at = seoul_now()
    db.commit()
    return create_session(db, user.id)

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leaderboard.models.notice import Notice


def list_active_notices(db: Session) -> list[Notice]:
    return (
        db.query(Notice)
        .filter(Notice.is_active.is_(True))
        .order_by(Notice.updated_at.desc(), Notice.id.desc())
        .all()
    )


def list_notices(db: Session) -> list[Notice]:
    return db.query(Notice).order_by(Notice.updated_at.desc(), Notice.id.desc()).all()


def find_notice(db: Session, notice_id: int) -> Notice | None:
    return db.query(Notice).filter(Notice.id == notice_id).first()


def create_notice(db: Session, message: str, is_active: bool = True) -> Notice:
    notice = Notice(message=message, is_active=is_active)
    try:
        db.add(notice)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(notice)
    return notice


def update_notice(db: Session, notice: Notice, message: str | None = None, is_active: bool | None = None) -> Notice:
    if message is not None:
        notice.message = message
    if is_active is not None:
        notice.is_active = is_active
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(notice)
    return notice


def delete_notice(db: Session, notice_id: int) -> bool:
    try:
        deleted = db.query(Notice).filter(Notice.id == notice_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return deleted > 0

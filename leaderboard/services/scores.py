from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leaderboard.core.clock import seoul_now
from leaderboard.models.score import Score
from leaderboard.models.user import User, normalize_semester
from leaderboard.services import uploads
from leaderboard.services.audit import log_evaluation_change


def list_scores_for_user(db: Session, user_id: int, project_number: int | None = None) -> list[Score]:
    query = db.query(Score).filter(Score.user_id == user_id)
    if project_number is not None:
        query = query.filter(Score.project_number == project_number)
    return query.order_by(Score.project_number.asc(), Score.evaluated_at.desc()).all()


def list_scores_for_admin(db: Session, student_number: str | None = None) -> list[dict]:
    query = db.query(Score, User).join(User, User.id == Score.user_id)
    if student_number:
        query = query.filter(User.student_number == student_number)
    rows = query.order_by(Score.evaluated_at.desc(), Score.id.desc()).all()
    return [
        {
            "id": score.id,
            "user_id": score.user_id,
            "user_public_id": user.public_id,
            "student_number": user.student_number,
            "name": user.name,
            "email": user.email,
            "user_year": normalize_semester(user.semester),
            "project_number": score.project_number,
            "score": score.score,
            "evaluated_at": score.evaluated_at,
            "file_name": score.file_name,
            "file_type": score.file_type,
            "file_size": score.file_size,
            "has_file": score.has_file,
        }
        for score, user in rows
    ]


def submit_score(
    db: Session,
    user: User,
    project_number: int,
    score: float,
    file_name: str | None,
    content: bytes,
) -> Score:
    """Store the attachment and insert the score row.

    Raises ``uploads.AttachmentError`` for a rejected file. If the insert
    fails the stored file is removed again before the error propagates.
    """
    attachment = uploads.store_attachment(user.id, file_name, content)

    record = Score(
        user_id=user.id,
        project_number=project_number,
        score=score,
        file_path=attachment.relative_path,
        file_name=attachment.file_name,
        file_type=attachment.file_type,
        file_size=attachment.file_size,
        evaluated_at=seoul_now(),
    )
    try:
        db.add(record)
        db.commit()
        db.refresh(record)
    except SQLAlchemyError:
        db.rollback()
        uploads.remove_stored_file(attachment.relative_path)
        raise

    log_evaluation_change(
        db,
        actor_user_id=user.id,
        action="create",
        score_id=record.id,
        target_user_id=user.id,
        project_number=project_number,
        score=score,
        payload={"source": "self-submit", "fileName": attachment.file_name},
    )
    return record


def find_score(db: Session, score_id: int, owner_id: int | None = None) -> Score | None:
    query = db.query(Score).filter(Score.id == score_id)
    if owner_id is not None:
        query = query.filter(Score.user_id == owner_id)
    return query.first()


def delete_score(
    db: Session,
    record: Score,
    actor_user_id: int,
    source: str,
) -> uploads.CleanupResult:
    """Delete ``record``, then try to remove its attachment.

    A failed unlink never undoes the delete; it is reported through the
    returned ``CleanupResult``.
    """
    snapshot = {
        "score_id": record.id,
        "target_user_id": record.user_id,
        "project_number": record.project_number,
        "score": record.score,
    }
    file_path = record.file_path

    try:
        db.delete(record)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    cleanup = uploads.remove_stored_file(file_path)

    log_evaluation_change(
        db,
        actor_user_id=actor_user_id,
        action="delete",
        payload={"source": source, "fileCleanup": cleanup.warning or ("removed" if cleanup.removed else "none")},
        **snapshot,
    )
    return cleanup

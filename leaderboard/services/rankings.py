"""Leaderboard queries.

Every ranking is computed on read with two window passes: the first numbers
each user's submissions (score desc, earliest submission first) and keeps the
top one, the second numbers the survivors with the same ordering to assign the
leaderboard position.
"""

from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from leaderboard.models.score import Score
from leaderboard.models.user import User, semester_year


def _best_ordering(score_column, evaluated_at_column, id_column):
    return (score_column.desc(), evaluated_at_column.asc(), id_column.asc())


def _ranked_best_scores(db: Session, project_number: int, year: int):
    per_user_rank = func.row_number().over(
        partition_by=Score.user_id,
        order_by=_best_ordering(Score.score, Score.evaluated_at, Score.id),
    )
    best_scores = (
        db.query(
            Score.id.label("id"),
            Score.user_id.label("user_id"),
            Score.project_number.label("project_number"),
            Score.score.label("score"),
            Score.evaluated_at.label("evaluated_at"),
            User.public_id.label("public_id"),
            per_user_rank.label("per_user_rank"),
        )
        .join(User, User.id == Score.user_id)
        .filter(
            Score.project_number == project_number,
            semester_year(User.semester) == year,
        )
        .subquery("best_scores")
    )

    position = func.row_number().over(
        order_by=_best_ordering(best_scores.c.score, best_scores.c.evaluated_at, best_scores.c.id),
    )
    return (
        db.query(
            best_scores.c.id,
            best_scores.c.user_id,
            best_scores.c.public_id,
            best_scores.c.project_number,
            best_scores.c.score,
            best_scores.c.evaluated_at,
            position.label("position"),
        )
        .filter(best_scores.c.per_user_rank == 1)
        .subquery("ranked")
    )


def list_ranking_rows(db: Session, project_number: int, year: int) -> list[dict]:
    ranked = _ranked_best_scores(db, project_number, year)
    rows = db.query(*ranked.c).order_by(ranked.c.position.asc()).all()
    return [
        {
            "id": row.id,
            "user_id": row.user_id,
            "public_id": row.public_id,
            "project_number": row.project_number,
            "score": row.score,
            "evaluated_at": row.evaluated_at,
            "position": row.position,
        }
        for row in rows
    ]


def get_ranking_summary_for_user(db: Session, project_number: int, year: int, user_id: int) -> dict | None:
    ranked = _ranked_best_scores(db, project_number, year)
    row = (
        db.query(ranked.c.position, ranked.c.score, ranked.c.evaluated_at)
        .filter(ranked.c.user_id == user_id)
        .first()
    )
    if row is None:
        return None
    return {"rank": row.position, "score": row.score, "evaluated_at": row.evaluated_at}


def list_admin_ranking_rows(
    db: Session,
    project_number: int,
    evaluated_from: datetime | None = None,
    evaluated_to: datetime | None = None,
) -> list[dict]:
    """Best-per-user ranking for one project across all cohorts.

    With both bounds given only submissions evaluated inside the inclusive
    range count; without them every submission does.
    """
    per_user_rank = func.row_number().over(
        partition_by=Score.user_id,
        order_by=_best_ordering(Score.score, Score.evaluated_at, Score.id),
    )
    query = (
        db.query(
            Score.id.label("id"),
            Score.user_id.label("user_id"),
            Score.project_number.label("project_number"),
            Score.score.label("score"),
            Score.evaluated_at.label("evaluated_at"),
            Score.file_name.label("file_name"),
            Score.file_size.label("file_size"),
            Score.file_path.label("file_path"),
            User.student_number.label("student_number"),
            User.name.label("name"),
            User.email.label("email"),
            User.public_id.label("public_id"),
            per_user_rank.label("per_user_rank"),
        )
        .join(User, User.id == Score.user_id)
        .filter(Score.project_number == project_number)
    )
    if evaluated_from is not None and evaluated_to is not None:
        query = query.filter(Score.evaluated_at.between(evaluated_from, evaluated_to))
    filtered = query.subquery("filtered")

    position = func.row_number().over(
        order_by=_best_ordering(filtered.c.score, filtered.c.evaluated_at, filtered.c.id),
    )
    best = (
        db.query(*filtered.c, position.label("position"))
        .filter(filtered.c.per_user_rank == 1)
        .subquery("best")
    )
    rows = db.query(*best.c).order_by(best.c.position.asc()).all()
    return [
        {
            "id": row.id,
            "position": row.position,
            "user_id": row.user_id,
            "student_number": row.student_number,
            "name": row.name,
            "email": row.email,
            "public_id": row.public_id,
            "project_number": row.project_number,
            "score": row.score,
            "evaluated_at": row.evaluated_at,
            "file_name": row.file_name,
            "file_size": row.file_size,
            "has_file": row.file_path is not None,
        }
        for row in rows
    ]


def list_distinct_user_years(db: Session) -> list[int]:
    year = semester_year(User.semester).label("year")
    rows = db.query(year).distinct().order_by(year.desc()).all()
    return [row.year for row in rows if row.year is not None]

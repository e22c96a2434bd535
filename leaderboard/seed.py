"""Populate the database with deterministic dummy users and submissions.

Usage:
    python -m leaderboard.seed

Re-running reuses existing seed users and only tops up missing submissions.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from leaderboard.auth.passwords import hash_password
from leaderboard.database import SessionLocal, init_db
from leaderboard.models.score import Score
from leaderboard.models.user import User
from leaderboard.services.users import generate_public_id

logger = logging.getLogger(__name__)

YEARS = (2021, 2022, 2023, 2024)
USERS_PER_YEAR = 30
PROJECTS = (1, 2, 3, 4)
SUBMISSIONS_PER_PROJECT = 3
SEED_PASSWORD = 'P@ssw0rd!'


@dataclass
class SeedStats:
    users_created: int = 0
    users_reused: int = 0
    scores_created: int = 0


def compute_score(year: int, user_index: int, project_number: int, submission_index: int) -> float:
    raw = (year % 2000) * 73 + user_index * 41 + project_number * 59 + submission_index * 97
    return round(62 + (raw % 360) / 10, 2)


def compute_file_size(user_index: int, project_number: int, submission_index: int) -> int:
    return 75_000 + (user_index * 113 + project_number * 997 + submission_index * 431) % 900_000


def build_evaluated_at(year: int, project_number: int, submission_index: int, user_index: int) -> datetime:
    month = (project_number - 1) * 3 + submission_index
    day = (user_index + submission_index) % 26 + 1
    hour = 9 + submission_index
    return datetime(year, month, day, hour, (user_index * 5) % 60)


def build_last_login(year: int, user_index: int) -> datetime:
    return datetime(year, 1, user_index % 27 + 1, 9, 0)


def seed_dummy_data(db: Session) -> SeedStats:
    """Insert the seed rows inside a single transaction on ``db``."""
    stats = SeedStats()
    password_hash = hash_password(SEED_PASSWORD)

    with db.begin():
        for year in YEARS:
            for index in range(1, USERS_PER_YEAR + 1):
                suffix = f'{index:03d}'
                student_number = f'{year}{index:04d}'
                user = db.query(User).filter(User.student_number == student_number).first()
                if user is None:
                    user = User(
                        student_number=student_number,
                        email=f'student{year}{suffix}@example.com',
                        password_hash=password_hash,
                        name=f'더미유저 {year}-{suffix}',
                        public_id=generate_public_id(db),
                        role='user',
                        semester=year,
                        last_login_at=build_last_login(year, index),
                        is_active=True,
                    )
                    db.add(user)
                    db.flush()
                    stats.users_created += 1
                else:
                    stats.users_reused += 1

                for project_number in PROJECTS:
                    existing = (
                        db.query(func.count(Score.id))
                        .filter(Score.user_id == user.id, Score.project_number == project_number)
                        .scalar()
                    )
                    for submission_index in range(existing + 1, SUBMISSIONS_PER_PROJECT + 1):
                        db.add(
                            Score(
                                user_id=user.id,
                                project_number=project_number,
                                score=compute_score(year, index, project_number, submission_index),
                                file_name=f'project-{project_number}-submission-{suffix}-{submission_index}.ipynb',
                                file_type='application/json',
                                file_size=compute_file_size(index, project_number, submission_index),
                                evaluated_at=build_evaluated_at(year, project_number, submission_index, index),
                            )
                        )
                        stats.scores_created += 1
                db.flush()

    return stats


def main() -> None:
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')
    init_db()

    db = SessionLocal()
    try:
        stats = seed_dummy_data(db)
    finally:
        db.close()

    logger.info('New users created: %s', stats.users_created)
    logger.info('Existing seed users reused: %s', stats.users_reused)
    logger.info('Scores inserted: %s', stats.scores_created)


if __name__ == '__main__':
    main()

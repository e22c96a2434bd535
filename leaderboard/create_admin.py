"""Create an administrator account, or promote an existing user.

Usage:
    python -m leaderboard.create_admin <studentNumber> <name> <password>
"""
import argparse
import logging
import sys

from leaderboard.database import SessionLocal, init_db
from leaderboard.services.users import ensure_admin

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description='Create or promote an admin account.')
    parser.add_argument('student_number', help='8-digit student number')
    parser.add_argument('name')
    parser.add_argument('password')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')
    init_db()

    db = SessionLocal()
    try:
        user, created = ensure_admin(db, args.student_number.strip(), args.name.strip(), args.password)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()

    if created:
        logger.info('Created admin %s (public id %s)', user.student_number, user.public_id)
    else:
        logger.info('Promoted %s to admin', user.student_number)


if __name__ == '__main__':
    main()

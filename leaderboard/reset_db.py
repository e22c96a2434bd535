"""Drop every table and recreate the schema.

Usage:
    python -m leaderboard.reset_db
"""
import logging

from leaderboard.database import Base, engine, init_db

logger = logging.getLogger(__name__)


def reset_database(bind=None) -> None:
    # Register every model before dropping so no table is left behind.
    from leaderboard.models import logs, notice, score, session, user  # noqa: F401

    bind = bind or engine
    Base.metadata.drop_all(bind=bind)
    init_db(bind)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')
    reset_database()
    logger.info('Database recreated at %s', engine.url.render_as_string(hide_password=True))


if __name__ == '__main__':
    main()

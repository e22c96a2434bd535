from pathlib import Path
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from leaderboard.core import config


def _build_engine(database_url: str):
    url = make_url(database_url)
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, connect_args=connect_args, echo=config.SQL_ECHO)


engine = _build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_user_schema_checked = False
_score_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_user_schema(bind=None) -> None:
    global _user_schema_checked

    if _user_schema_checked:
        return

    with _schema_lock:
        if _user_schema_checked:
            return

        bind = bind or engine
        inspector = inspect(bind)

        if 'users' not in inspector.get_table_names():
            _user_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('users')}
        migration_steps = [
            ('email', 'ALTER TABLE users ADD COLUMN email VARCHAR'),
            ('is_active', 'ALTER TABLE users ADD COLUMN is_active BOOLEAN NOT NULL DEFAULT 1'),
            ('last_login_at', 'ALTER TABLE users ADD COLUMN last_login_at DATETIME'),
        ]

        with bind.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email ON users(email)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_users_semester ON users(semester)')
            )

        _user_schema_checked = True


def ensure_score_schema(bind=None) -> None:
    global _score_schema_checked

    if _score_schema_checked:
        return

    with _schema_lock:
        if _score_schema_checked:
            return

        bind = bind or engine
        inspector = inspect(bind)

        if 'scores' not in inspector.get_table_names():
            _score_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('scores')}
        migration_steps = [
            ('file_path', 'ALTER TABLE scores ADD COLUMN file_path VARCHAR'),
            ('file_name', 'ALTER TABLE scores ADD COLUMN file_name VARCHAR'),
            ('file_type', 'ALTER TABLE scores ADD COLUMN file_type VARCHAR'),
            ('file_size', 'ALTER TABLE scores ADD COLUMN file_size INTEGER'),
        ]

        with bind.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_scores_project_user ON scores(project_number, user_id)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_scores_project_evaluated ON scores(project_number, evaluated_at)')
            )

        _score_schema_checked = True


def init_db(bind=None) -> None:
    # Import the model modules so every table is registered on Base.metadata.
    from leaderboard.models import logs, notice, score, session, user  # noqa: F401

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    ensure_user_schema(bind)
    ensure_score_schema(bind)

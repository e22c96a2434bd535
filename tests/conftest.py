import os

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('BCRYPT_ROUNDS', '4')

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from leaderboard.auth.passwords import hash_password  # noqa: E402
from leaderboard.core import config  # noqa: E402
from leaderboard.database import get_db, init_db  # noqa: E402
from leaderboard.main import app  # noqa: E402
from leaderboard.models.user import User  # noqa: E402
from leaderboard.services.users import generate_public_id  # noqa: E402

DEFAULT_PASSWORD = 'password123'


@pytest.fixture
def engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def upload_root(tmp_path, monkeypatch: pytest.MonkeyPatch):
    root = tmp_path / 'uploads'
    monkeypatch.setattr(config, 'UPLOAD_ROOT', str(root))
    return root


@pytest.fixture
def client(session_factory, upload_root):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make_user(
        student_number: str = '20240001',
        *,
        password: str = DEFAULT_PASSWORD,
        role: str = 'user',
        semester: int = 2024,
        name: str = '홍길동',
        is_active: bool = True,
    ) -> User:
        user = User(
            student_number=student_number,
            email=f'{student_number}@example.com',
            password_hash=hash_password(password),
            name=name,
            public_id=generate_public_id(db),
            role=role,
            semester=semester,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def login_as(client, make_user):
    """Create a user and log the test client in as them."""

    def _login_as(student_number: str = '20240001', **kwargs) -> User:
        user = make_user(student_number, **kwargs)
        response = client.post(
            '/api/login',
            json={'studentNumber': student_number, 'password': kwargs.get('password', DEFAULT_PASSWORD)},
        )
        assert response.status_code == 200
        return user

    return _login_as

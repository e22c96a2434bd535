import logging
import re
import secrets

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from leaderboard.auth.passwords import hash_password, verify_password
from leaderboard.auth.sessions import revoke_sessions_for_user
from leaderboard.core import config
from leaderboard.core.clock import seoul_now
from leaderboard.models.user import User

logger = logging.getLogger(__name__)

STUDENT_NUMBER_PATTERN = re.compile(r"^\d{8}$")
NAME_PATTERN = re.compile(r"^[가-힣a-zA-Z\s]{2,}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_SEMESTER_YEAR = 2000
MAX_SEMESTER_YEARS_AHEAD = 10


class UserRequestError(Exception):
    """A rejected user operation, carrying the status code and reason code."""

    def __init__(self, status_code: int, reason: str, message: str, **metadata) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason
        self.message = message
        self.metadata = metadata


def is_valid_student_number(value: str | None) -> bool:
    return bool(value) and STUDENT_NUMBER_PATTERN.match(value) is not None


def find_user_by_student_number(db: Session, student_number: str) -> User | None:
    return db.query(User).filter(User.student_number == student_number).first()


def list_users(db: Session) -> list[User]:
    return db.query(User).order_by(User.created_at.asc(), User.id.asc()).all()


def generate_public_id(db: Session) -> str:
    public_id = secrets.token_hex(4)
    while db.query(User.id).filter(User.public_id == public_id).first() is not None:
        public_id = secrets.token_hex(4)
    return public_id


def authenticate_user(db: Session, student_number: str | None, password: str | None) -> User:
    """Check login credentials, raising ``UserRequestError`` on any rejection."""
    student_number = (student_number or "").strip()
    if not student_number or not password:
        raise UserRequestError(400, "missing_credentials", "학번과 비밀번호를 모두 입력해주세요.")

    if not is_valid_student_number(student_number):
        raise UserRequestError(
            400, "invalid_student_number", "학번 형식이 올바르지 않습니다.", studentNumber=student_number
        )

    user = find_user_by_student_number(db, student_number)
    if user is None:
        raise UserRequestError(401, "user_not_found", "등록되지 않은 학번입니다.", studentNumber=student_number)

    if not user.is_active:
        raise UserRequestError(
            403, "inactive_account", "비활성화된 계정입니다. 관리자에게 문의하세요.", studentNumber=student_number
        )

    if not verify_password(password, user.password_hash):
        raise UserRequestError(401, "invalid_password", "비밀번호가 일치하지 않습니다.", studentNumber=student_number)

    return user


def register_user(
    db: Session,
    *,
    name: str | None,
    student_number: str | None,
    email: str | None,
    password: str | None,
) -> User:
    """Create a self-registered account. Signups always get the ``user`` role."""
    name = (name or "").strip()
    student_number = (student_number or "").strip()
    email = (email or "").strip()

    if not name or not student_number or not email or not password:
        raise UserRequestError(
            400, "missing_fields", "이름, 학번, 이메일, 비밀번호는 필수 입력값입니다.", studentNumber=student_number
        )

    if not NAME_PATTERN.match(name):
        raise UserRequestError(
            400, "invalid_name", "이름은 한글 또는 영문으로 입력해주세요.", studentNumber=student_number
        )

    if not is_valid_student_number(student_number):
        raise UserRequestError(
            400, "invalid_student_number", "학번 형식이 올바르지 않습니다.", studentNumber=student_number
        )

    if not EMAIL_PATTERN.match(email):
        raise UserRequestError(400, "invalid_email", "이메일 형식이 올바르지 않습니다.", email=email)

    if find_user_by_student_number(db, student_number) is not None:
        raise UserRequestError(
            409, "duplicate_student_number", "이미 존재하는 학번입니다.", studentNumber=student_number
        )

    if db.query(User.id).filter(User.email == email).first() is not None:
        raise UserRequestError(409, "duplicate_email", "이미 등록된 이메일입니다.", email=email)

    user = User(
        student_number=student_number,
        email=email,
        password_hash=hash_password(password),
        name=name,
        public_id=generate_public_id(db),
        role="user",
        semester=seoul_now().year,
    )
    try:
        db.add(user)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        message = str(exc.orig)
        logger.warning("User insert hit a unique constraint: %s", message)
        if "users.email" in message:
            raise UserRequestError(409, "duplicate_email", "이미 등록된 이메일입니다.", email=email) from exc
        raise UserRequestError(
            409, "duplicate_student_number", "이미 존재하는 학번입니다.", studentNumber=student_number
        ) from exc
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(user)
    return user


def update_user(
    db: Session,
    user_id,
    *,
    name: str | None,
    student_number: str | None,
    role: str | None,
    semester=None,
    is_active: bool | None = None,
) -> User:
    """Apply an administrator's edit to a user record."""
    if isinstance(user_id, bool) or not isinstance(user_id, int) or not 0 < user_id <= config.MAX_RECORD_ID:
        raise UserRequestError(400, "invalid_id", "유효한 사용자 ID가 필요합니다.", id=user_id)

    name = (name or "").strip()
    student_number = (student_number or "").strip()
    role = (role or "").strip()

    if not name:
        raise UserRequestError(400, "missing_name", "이름을 입력해주세요.", id=user_id)

    if not is_valid_student_number(student_number):
        raise UserRequestError(400, "invalid_student_number", "학번은 8자리 숫자여야 합니다.", id=user_id)

    if role not in config.ROLES:
        raise UserRequestError(400, "invalid_role", "역할 정보가 올바르지 않습니다.", id=user_id)

    current_year = seoul_now().year
    if semester is None:
        semester = current_year
    if (
        isinstance(semester, bool)
        or not isinstance(semester, int)
        or not MIN_SEMESTER_YEAR <= semester <= current_year + MAX_SEMESTER_YEARS_AHEAD
    ):
        raise UserRequestError(
            400, "invalid_semester", "년도는 4자리 숫자로 입력해주세요.", id=user_id, semester=semester
        )

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise UserRequestError(404, "not_found", "사용자를 찾을 수 없습니다.", id=user_id)

    user.name = name
    user.student_number = student_number
    user.role = role
    user.semester = semester
    if is_active is not None:
        user.is_active = is_active

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise UserRequestError(409, "duplicate_student_number", "중복된 학번입니다.", id=user_id) from exc
    except SQLAlchemyError:
        db.rollback()
        raise

    if is_active is False:
        revoke_sessions_for_user(db, user.id)

    db.refresh(user)
    return user


def ensure_admin(db: Session, student_number: str, name: str, password: str) -> tuple[User, bool]:
    """Create an admin account or promote an existing one. Returns ``(user, created)``."""
    if not is_valid_student_number(student_number):
        raise ValueError("Student number must be exactly 8 digits.")

    user = find_user_by_student_number(db, student_number)
    created = user is None
    if created:
        user = User(
            student_number=student_number,
            password_hash=hash_password(password),
            name=name,
            public_id=generate_public_id(db),
            role="admin",
            semester=seoul_now().year,
        )
        db.add(user)
    else:
        user.role = "admin"
        user.is_active = True
        user.password_hash = hash_password(password)
        if name:
            user.name = name

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(user)
    return user, created

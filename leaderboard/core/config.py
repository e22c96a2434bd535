import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./db/app.db")
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

SESSION_COOKIE_NAME = "session_token"
SESSION_TTL_DAYS = int(os.getenv("SESSION_TTL_DAYS", "7"))
SESSION_COOKIE_SECURE = _get_bool(os.getenv("SESSION_COOKIE_SECURE"), default=APP_ENV.lower() == "production")

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

UPLOAD_ROOT = os.getenv("UPLOAD_ROOT", os.path.join("uploads", "evaluation-scores"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
ALLOWED_UPLOAD_EXTENSIONS = {".ipynb", ".py"}

PROJECT_NUMBERS = (1, 2, 3, 4)
ROLES = {"user", "admin"}
# Largest value a SQLite INTEGER column can bind.
MAX_RECORD_ID = 2**63 - 1

# Semesters stored at or above this value are packed as year * 100 + term.
PACKED_SEMESTER_THRESHOLD = 100000

ADMIN_RANKING_DEFAULT_DAYS = 7

CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:3000"])

def validate_runtime_config() -> None:
    if APP_ENV.lower() != "production":
        return
    if DATABASE_URL in {"sqlite://", "sqlite:///:memory:"}:
        raise RuntimeError("DATABASE_URL must point at a persistent database in production.")
    if not UPLOAD_ROOT.strip():
        raise RuntimeError("UPLOAD_ROOT must be set in production.")

"""Attachment storage for score submissions.

Files live under ``config.UPLOAD_ROOT`` as ``<user id>/<uuid>_<sanitized name>``
and the score row keeps the path relative to that root.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path

from leaderboard.core import config

logger = logging.getLogger(__name__)

FILE_TYPES = {
    ".ipynb": "application/json",
    ".py": "text/x-python",
}

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


class AttachmentError(Exception):
    def __init__(self, reason: str, message: str, **metadata) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.metadata = metadata


@dataclass
class StoredAttachment:
    relative_path: str
    file_name: str
    file_type: str
    file_size: int


@dataclass
class CleanupResult:
    path: str | None
    removed: bool
    warning: str | None = None

    @property
    def ok(self) -> bool:
        return self.warning is None


def upload_root() -> Path:
    return Path(config.UPLOAD_ROOT).resolve()


def resolve_within_upload_root(relative_path: str) -> Path:
    base = upload_root()
    resolved = (base / relative_path).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError("Invalid file path outside upload directory")
    return resolved


def resolve_stored_file_path(stored_path: str | None) -> Path | None:
    if not stored_path:
        return None
    base = upload_root()
    candidate = Path(stored_path)
    candidate = candidate.resolve() if candidate.is_absolute() else (base / candidate).resolve()
    if not candidate.is_relative_to(base):
        logger.warning("Ignoring stored file path outside upload root: %s", stored_path)
        return None
    return candidate


def sanitize_filename(file_name: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", file_name)


def validate_attachment(file_name: str | None, content: bytes) -> str:
    """Validate an uploaded attachment and return its extension."""
    if not content:
        raise AttachmentError("missing_file", "제출 파일을 첨부해주세요.")

    if len(content) > config.MAX_UPLOAD_BYTES:
        raise AttachmentError(
            "file_too_large",
            f"파일 크기는 {config.MAX_UPLOAD_BYTES // (1024 * 1024)}MB 이하여야 합니다.",
            fileSize=len(content),
        )

    extension = Path(sanitize_filename(file_name or "submission")).suffix.lower()
    if extension not in config.ALLOWED_UPLOAD_EXTENSIONS:
        raise AttachmentError(
            "disallowed_extension",
            "허용되지 않은 파일 형식입니다. (.ipynb 또는 .py만 업로드 가능)",
            extension=extension,
        )

    if extension == ".ipynb":
        try:
            notebook = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise AttachmentError(
                "invalid_ipynb_json",
                "주피터 노트북 파일이 손상되었거나 JSON 형식이 아닙니다.",
            ) from exc
        if not isinstance(notebook, dict) or not isinstance(notebook.get("cells"), list):
            raise AttachmentError("invalid_ipynb_structure", "유효한 주피터 노트북 파일이 아닙니다.")

    if extension == ".py" and b"\x00" in content:
        raise AttachmentError(
            "python_contains_null_byte",
            "파이썬 스크립트에 유효하지 않은 문자가 포함되어 있습니다.",
        )

    return extension


def store_attachment(user_id: int, file_name: str | None, content: bytes) -> StoredAttachment:
    """Validate and write ``content``; raises ``AttachmentError`` or ``OSError``."""
    original_name = file_name or "submission"
    extension = validate_attachment(original_name, content)

    stored_name = f"{uuid.uuid4()}_{sanitize_filename(original_name)}"
    relative_path = str(Path(str(user_id)) / stored_name)
    full_path = resolve_within_upload_root(relative_path)
    full_path.parent.mkdir(parents=True, exist_ok=True)
    full_path.write_bytes(content)

    return StoredAttachment(
        relative_path=relative_path,
        file_name=original_name,
        file_type=FILE_TYPES[extension],
        file_size=len(content),
    )


def remove_stored_file(stored_path: str | None) -> CleanupResult:
    """Best-effort unlink of a stored attachment; failures come back as a warning."""
    absolute_path = resolve_stored_file_path(stored_path)
    if absolute_path is None:
        return CleanupResult(path=stored_path, removed=False)

    try:
        absolute_path.unlink()
    except FileNotFoundError:
        logger.warning("Attachment already missing: %s", absolute_path)
        return CleanupResult(path=stored_path, removed=False, warning="file_missing")
    except OSError as exc:
        logger.warning("Failed to delete attachment %s: %s", absolute_path, exc)
        return CleanupResult(path=stored_path, removed=False, warning="unlink_failed")

    return CleanupResult(path=stored_path, removed=True)

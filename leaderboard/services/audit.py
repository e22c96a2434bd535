"""Request and evaluation audit trail.

Both writers are best effort: a failed insert is logged and rolled back, and
never reaches the caller.
"""

import json
import logging
from typing import Any

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from leaderboard.models.logs import EvaluationLog, RequestLog
from leaderboard.models.user import User, normalize_semester

logger = logging.getLogger(__name__)

EVALUATION_ACTIONS = {"create", "delete"}


def get_request_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
        if ip:
            return ip

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def resolve_request_source(user_id: int | None, ip_address: str | None) -> str:
    if user_id is not None:
        return f"user:{user_id}"
    return f"ip:{ip_address or 'unknown'}"


def _dump(value: dict[str, Any] | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


def write_request_log(
    db: Session,
    *,
    source: str,
    path: str,
    method: str,
    status: int | None,
    metadata: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> None:
    try:
        db.add(
            RequestLog(
                source=source,
                path=path,
                method=method.upper(),
                status=status,
                metadata_json=_dump(metadata),
                ip_address=ip_address,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Failed to write request log for %s %s", method, path, exc_info=True)


def log_evaluation_change(
    db: Session,
    *,
    actor_user_id: int | None,
    action: str,
    score_id: int | None,
    target_user_id: int | None,
    project_number: int | None,
    score: float | None,
    payload: dict[str, Any] | None = None,
) -> None:
    if action not in EVALUATION_ACTIONS:
        raise ValueError(f"Unknown evaluation action: {action}")

    try:
        db.add(
            EvaluationLog(
                actor_user_id=actor_user_id,
                action=action,
                score_id=score_id,
                target_user_id=target_user_id,
                project_number=project_number,
                score=score,
                payload=_dump(payload),
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Failed to write evaluation log for score %s", score_id, exc_info=True)


class RequestAuditor:
    """Writes request log rows for one request.

    The actor starts as the client IP and switches to the user once the auth
    guard has resolved a session.
    """

    def __init__(self, db: Session, request: Request) -> None:
        self.db = db
        self.path = request.url.path
        self.method = request.method
        self.ip_address = get_request_ip(request)
        self.user_id: int | None = None

    def __call__(self, status: int, **metadata: Any) -> None:
        write_request_log(
            self.db,
            source=resolve_request_source(self.user_id, self.ip_address),
            path=self.path,
            method=self.method,
            status=status,
            metadata=metadata or None,
            ip_address=self.ip_address,
        )


def parse_metadata(raw: str | None) -> dict[str, Any] | str | None:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def derive_source(raw_source: str) -> tuple[str, str, int | None]:
    if raw_source.startswith("user:"):
        value = raw_source[5:]
        try:
            return "user", value, int(value)
        except ValueError:
            return "user", value, None
    if raw_source.startswith("ip:"):
        return "ip", raw_source[3:], None
    return "unknown", raw_source, None


def list_request_logs(db: Session, limit: int = 100, before_id: int | None = None) -> tuple[list[dict], bool]:
    query = db.query(RequestLog)
    if before_id is not None:
        query = query.filter(RequestLog.id < before_id)
    rows = query.order_by(RequestLog.id.desc()).limit(limit + 1).all()
    has_more = len(rows) > limit
    rows = rows[:limit]

    user_ids = {derive_source(row.source)[2] for row in rows} - {None}
    users = {}
    if user_ids:
        users = {user.id: user for user in db.query(User).filter(User.id.in_(user_ids)).all()}

    logs = []
    for row in rows:
        source_type, source_value, source_user_id = derive_source(row.source)
        user = users.get(source_user_id)
        logs.append(
            {
                "id": row.id,
                "source": row.source,
                "source_type": source_type,
                "source_value": source_value,
                "source_user_id": source_user_id,
                "user_public_id": user.public_id if user else None,
                "user_student_number": user.student_number if user else None,
                "name": user.name if user else None,
                "path": row.path,
                "method": row.method.upper(),
                "status": row.status,
                "metadata": parse_metadata(row.metadata_json),
                "ip_address": row.ip_address,
                "created_at": row.created_at,
            }
        )
    return logs, has_more


def list_evaluation_logs(db: Session, limit: int = 100) -> list[dict]:
    actor = aliased(User)
    target = aliased(User)
    rows = (
        db.query(
            EvaluationLog,
            actor.public_id.label("actor_public_id"),
            actor.semester.label("actor_semester"),
            target.public_id.label("target_public_id"),
            target.semester.label("target_semester"),
        )
        .outerjoin(actor, actor.id == EvaluationLog.actor_user_id)
        .outerjoin(target, target.id == EvaluationLog.target_user_id)
        .order_by(EvaluationLog.created_at.desc(), EvaluationLog.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": entry.id,
            "actor_user_id": entry.actor_user_id,
            "actor_public_id": actor_public_id,
            "actor_year": normalize_semester(actor_semester),
            "action": entry.action,
            "score_id": entry.score_id,
            "target_user_id": entry.target_user_id,
            "target_public_id": target_public_id,
            "target_year": normalize_semester(target_semester),
            "project_number": entry.project_number,
            "score": entry.score,
            "payload": parse_metadata(entry.payload),
            "created_at": entry.created_at,
        }
        for entry, actor_public_id, actor_semester, target_public_id, target_semester in rows
    ]

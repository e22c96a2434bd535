import logging
from datetime import date, datetime, time, timedelta
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leaderboard.auth.dependencies import get_request_auditor, require_admin
from leaderboard.core import config
from leaderboard.core.clock import seoul_now, to_seoul_naive
from leaderboard.database import get_db
from leaderboard.models.user import User
from leaderboard.routes.ranking_routes import INVALID_PROJECT_DETAIL, parse_project_number
from leaderboard.routes.result_routes import (
    DELETE_FAILED_DETAIL,
    INVALID_RECORD_ID_DETAIL,
    RECORD_NOT_FOUND_DETAIL,
    is_valid_record_id,
)
from leaderboard.schemas import CamelModel, NoticeResponse, UserResponse
from leaderboard.services import audit as audit_service
from leaderboard.services import exports as export_service
from leaderboard.services import notices as notice_service
from leaderboard.services import rankings as ranking_service
from leaderboard.services import scores as score_service
from leaderboard.services import users as user_service
from leaderboard.services.audit import RequestAuditor

router = APIRouter(tags=['admin'])

logger = logging.getLogger(__name__)

INVALID_DATE_RANGE_DETAIL = '유효한 날짜 범위가 필요합니다.'
INVALID_NOTICE_ID_DETAIL = '유효한 공지 ID가 필요합니다.'
MISSING_NOTICE_MESSAGE_DETAIL = '공지 내용을 입력해주세요.'
NOTICE_NOT_FOUND_DETAIL = '공지를 찾을 수 없습니다.'
NOTICE_NO_CHANGES_DETAIL = '변경할 항목이 없습니다.'
NOTICE_SAVE_FAILED_DETAIL = '공지 저장 중 오류가 발생했습니다.'
USER_UPDATE_FAILED_DETAIL = '사용자 수정 중 오류가 발생했습니다.'
DEFAULT_LOG_LIMIT = 100
MAX_LOG_LIMIT = 500


class UserListResponse(CamelModel):
    users: list[UserResponse]


class UpdateUserRequest(CamelModel):
    id: Any = None
    name: str | None = None
    student_number: str | None = None
    role: str | None = None
    semester: Any = None
    is_active: bool | None = None


class UpdateUserResponse(CamelModel):
    user: UserResponse


class AdminScoreResponse(CamelModel):
    id: int
    user_id: int
    user_public_id: str
    student_number: str
    name: str | None = None
    email: str | None = None
    user_year: int | None = None
    project_number: int
    score: float
    evaluated_at: datetime
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = None
    has_file: bool


class AdminScoreListResponse(CamelModel):
    scores: list[AdminScoreResponse]


class DeleteScoreRequest(BaseModel):
    id: Any = None


class DeleteScoreResponse(CamelModel):
    success: bool = True
    cleanup_warning: str | None = None


class AdminRankingRowResponse(CamelModel):
    id: int
    position: int
    user_id: int
    student_number: str
    name: str | None = None
    email: str | None = None
    public_id: str
    project_number: int
    score: float
    evaluated_at: datetime
    file_name: str | None = None
    file_size: int | None = None
    has_file: bool


class AdminRankingResponse(CamelModel):
    rankings: list[AdminRankingRowResponse]
    project_number: int
    range_from: datetime = Field(alias='from')
    range_to: datetime = Field(alias='to')


class NoticeListResponse(BaseModel):
    notices: list[NoticeResponse]


class NoticeEnvelope(BaseModel):
    notice: NoticeResponse


class CreateNoticeRequest(CamelModel):
    message: str | None = None
    is_active: bool | None = None


class UpdateNoticeRequest(CamelModel):
    id: Any = None
    message: str | None = None
    is_active: bool | None = None


class DeleteNoticeRequest(BaseModel):
    id: Any = None


class SuccessResponse(BaseModel):
    success: bool = True


class RequestLogResponse(CamelModel):
    id: int
    source: str
    source_type: str
    source_value: str
    source_user_id: int | None = None
    user_public_id: str | None = None
    user_student_number: str | None = None
    name: str | None = None
    path: str
    method: str
    status: int | None = None
    metadata: Any = None
    ip_address: str | None = None
    created_at: datetime


class RequestLogListResponse(CamelModel):
    logs: list[RequestLogResponse]
    has_more: bool
    next_before_id: int | None = None


class EvaluationLogResponse(CamelModel):
    id: int
    actor_user_id: int | None = None
    actor_public_id: str | None = None
    actor_year: int | None = None
    action: str
    score_id: int | None = None
    target_user_id: int | None = None
    target_public_id: str | None = None
    target_year: int | None = None
    project_number: int | None = None
    score: float | None = None
    payload: Any = None
    created_at: datetime


class EvaluationLogListResponse(CamelModel):
    logs: list[EvaluationLogResponse]


def parse_range_bound(raw: str | None, default: datetime) -> date:
    """Parse an ISO date or datetime query value down to a Seoul calendar date."""
    if raw is None or raw.strip() == '':
        return default.date()
    value = raw.strip()
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return to_seoul_naive(datetime.fromisoformat(value)).date()


def resolve_ranking_range(raw_from: str | None, raw_to: str | None) -> tuple[datetime, datetime]:
    """Return inclusive ``(from, to)`` bounds spanning whole days.

    Missing bounds default to the trailing window ending today, and reversed
    bounds are swapped. Raises ``ValueError`` for unparseable input.
    """
    now = seoul_now()
    start = parse_range_bound(raw_from, now - timedelta(days=config.ADMIN_RANKING_DEFAULT_DAYS))
    end = parse_range_bound(raw_to, now)
    if start > end:
        start, end = end, start
    return datetime.combine(start, time.min), datetime.combine(end, time.max)


def parse_positive_id(value: Any) -> int | None:
    return value if is_valid_record_id(value) else None


@router.get('/users', response_model=UserListResponse)
def list_users(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    users = [UserResponse.model_validate(user) for user in user_service.list_users(db)]
    audit(status.HTTP_200_OK, count=len(users))
    return UserListResponse(users=users)


@router.patch('/users', response_model=UpdateUserResponse)
def update_user(
    payload: UpdateUserRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    try:
        user = user_service.update_user(
            db,
            payload.id,
            name=payload.name,
            student_number=payload.student_number,
            role=payload.role,
            semester=payload.semester,
            is_active=payload.is_active,
        )
    except user_service.UserRequestError as exc:
        audit(exc.status_code, reason=exc.reason, **exc.metadata)
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    except SQLAlchemyError as exc:
        logger.exception('Failed to update user %s', payload.id)
        audit(status.HTTP_500_INTERNAL_SERVER_ERROR, reason='update_failed', id=payload.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=USER_UPDATE_FAILED_DETAIL,
        ) from exc

    response = UpdateUserResponse(user=UserResponse.model_validate(user))
    audit(status.HTTP_200_OK, id=user.id)
    return response


@router.get('/scores', response_model=AdminScoreListResponse)
def list_scores(
    student_number: str | None = Query(default=None, alias='studentNumber'),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    scores = [
        AdminScoreResponse.model_validate(row)
        for row in score_service.list_scores_for_admin(db, student_number)
    ]
    audit(status.HTTP_200_OK, count=len(scores))
    return AdminScoreListResponse(scores=scores)


@router.delete('/scores', response_model=DeleteScoreResponse)
def delete_score(
    payload: DeleteScoreRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    if not is_valid_record_id(payload.id):
        audit(status.HTTP_400_BAD_REQUEST, reason='invalid_id', id=payload.id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_RECORD_ID_DETAIL)

    record = score_service.find_score(db, payload.id)
    if record is None:
        audit(status.HTTP_404_NOT_FOUND, reason='not_found', id=payload.id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=RECORD_NOT_FOUND_DETAIL)

    try:
        cleanup = score_service.delete_score(db, record, actor_user_id=admin.id, source='admin-delete')
    except SQLAlchemyError as exc:
        logger.exception('Failed to delete score %s', payload.id)
        audit(status.HTTP_500_INTERNAL_SERVER_ERROR, action='delete', scoreId=payload.id, reason='delete_failed')
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=DELETE_FAILED_DETAIL,
        ) from exc

    audit(status.HTTP_200_OK, action='delete', scoreId=payload.id, fileCleanup=cleanup.warning or 'ok')
    return DeleteScoreResponse(cleanup_warning=cleanup.warning)


@router.get('/rankings', response_model=AdminRankingResponse)
def list_rankings(
    project: str | None = Query(default=None),
    range_from: str | None = Query(default=None, alias='from'),
    range_to: str | None = Query(default=None, alias='to'),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    try:
        project_number = parse_project_number(project)
    except ValueError as exc:
        audit(status.HTTP_400_BAD_REQUEST, reason='invalid_project', projectParam=project)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_PROJECT_DETAIL) from exc

    try:
        evaluated_from, evaluated_to = resolve_ranking_range(range_from, range_to)
    except ValueError as exc:
        audit(status.HTTP_400_BAD_REQUEST, reason='invalid_date', fromParam=range_from, toParam=range_to)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_DATE_RANGE_DETAIL) from exc

    rows = ranking_service.list_admin_ranking_rows(db, project_number, evaluated_from, evaluated_to)
    audit(
        status.HTTP_200_OK,
        projectNumber=project_number,
        rangeFrom=evaluated_from.isoformat(),
        rangeTo=evaluated_to.isoformat(),
        count=len(rows),
    )
    return AdminRankingResponse(
        rankings=[AdminRankingRowResponse.model_validate(row) for row in rows],
        project_number=project_number,
        range_from=evaluated_from,
        range_to=evaluated_to,
    )


@router.get('/rankings/export')
def export_rankings(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    sheets = [
        (project_number, ranking_service.list_admin_ranking_rows(db, project_number))
        for project_number in config.PROJECT_NUMBERS
    ]
    content = export_service.build_ranking_workbook(sheets)
    file_name = f'project-all-rankings-{seoul_now():%Y%m%d-%H%M%S}.xls'

    audit(
        status.HTTP_200_OK,
        projects=list(config.PROJECT_NUMBERS),
        rowCounts={str(project_number): len(rows) for project_number, rows in sheets},
    )
    return Response(
        content=content,
        media_type=export_service.EXCEL_MEDIA_TYPE,
        headers={
            'Content-Disposition': f'attachment; filename="{file_name}"',
            'Cache-Control': 'no-store',
        },
    )


@router.get('/notices', response_model=NoticeListResponse)
def list_notices(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    notices = [NoticeResponse.model_validate(notice) for notice in notice_service.list_notices(db)]
    audit(status.HTTP_200_OK, count=len(notices))
    return NoticeListResponse(notices=notices)


@router.post('/notices', response_model=NoticeEnvelope, status_code=status.HTTP_201_CREATED)
def create_notice(
    payload: CreateNoticeRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    message = (payload.message or '').strip()
    if not message:
        audit(status.HTTP_400_BAD_REQUEST, reason='missing_message')
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_NOTICE_MESSAGE_DETAIL)

    is_active = True if payload.is_active is None else payload.is_active
    try:
        notice = notice_service.create_notice(db, message, is_active)
    except SQLAlchemyError as exc:
        logger.exception('Failed to create notice')
        audit(status.HTTP_500_INTERNAL_SERVER_ERROR, reason='insert_failed')
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=NOTICE_SAVE_FAILED_DETAIL,
        ) from exc

    envelope = NoticeEnvelope(notice=NoticeResponse.model_validate(notice))
    audit(status.HTTP_201_CREATED, id=envelope.notice.id)
    return envelope


@router.patch('/notices', response_model=NoticeEnvelope)
def update_notice(
    payload: UpdateNoticeRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    notice_id = parse_positive_id(payload.id)
    if notice_id is None:
        audit(status.HTTP_400_BAD_REQUEST, reason='invalid_id', id=payload.id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_NOTICE_ID_DETAIL)

    has_message = 'message' in payload.model_fields_set
    has_active = 'is_active' in payload.model_fields_set and payload.is_active is not None
    if not has_message and not has_active:
        audit(status.HTTP_400_BAD_REQUEST, reason='no_changes', id=notice_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=NOTICE_NO_CHANGES_DETAIL)

    notice = notice_service.find_notice(db, notice_id)
    if notice is None:
        audit(status.HTTP_404_NOT_FOUND, reason='not_found', id=notice_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOTICE_NOT_FOUND_DETAIL)

    message = None
    if has_message:
        message = (payload.message or '').strip()
        if not message:
            audit(status.HTTP_400_BAD_REQUEST, reason='empty_message', id=notice_id)
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_NOTICE_MESSAGE_DETAIL)

    try:
        notice = notice_service.update_notice(
            db,
            notice,
            message=message,
            is_active=payload.is_active if has_active else None,
        )
    except SQLAlchemyError as exc:
        logger.exception('Failed to update notice %s', notice_id)
        audit(status.HTTP_500_INTERNAL_SERVER_ERROR, reason='update_failed', id=notice_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=NOTICE_SAVE_FAILED_DETAIL,
        ) from exc

    envelope = NoticeEnvelope(notice=NoticeResponse.model_validate(notice))
    audit(status.HTTP_200_OK, id=notice_id)
    return envelope


@router.delete('/notices', response_model=SuccessResponse)
def delete_notice(
    payload: DeleteNoticeRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    notice_id = parse_positive_id(payload.id)
    if notice_id is None:
        audit(status.HTTP_400_BAD_REQUEST, reason='invalid_id', id=payload.id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_NOTICE_ID_DETAIL)

    try:
        deleted = notice_service.delete_notice(db, notice_id)
    except SQLAlchemyError as exc:
        logger.exception('Failed to delete notice %s', notice_id)
        audit(status.HTTP_500_INTERNAL_SERVER_ERROR, reason='delete_failed', id=notice_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=NOTICE_SAVE_FAILED_DETAIL,
        ) from exc

    if not deleted:
        audit(status.HTTP_404_NOT_FOUND, reason='not_found', id=notice_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOTICE_NOT_FOUND_DETAIL)

    audit(status.HTTP_200_OK, action='delete', id=notice_id)
    return SuccessResponse()


@router.get('/request-logs', response_model=RequestLogListResponse)
def list_request_logs(
    limit: int = Query(default=DEFAULT_LOG_LIMIT, ge=1, le=MAX_LOG_LIMIT),
    before_id: int | None = Query(default=None, alias='beforeId', ge=1, le=config.MAX_RECORD_ID),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    rows, has_more = audit_service.list_request_logs(db, limit=limit, before_id=before_id)
    response = RequestLogListResponse(
        logs=[RequestLogResponse.model_validate(row) for row in rows],
        has_more=has_more,
        next_before_id=rows[-1]['id'] if has_more and rows else None,
    )
    audit(status.HTTP_200_OK, count=len(rows))
    return response


@router.get('/evaluation-logs', response_model=EvaluationLogListResponse)
def list_evaluation_logs(
    limit: int = Query(default=DEFAULT_LOG_LIMIT, ge=1, le=MAX_LOG_LIMIT),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    rows = audit_service.list_evaluation_logs(db, limit=limit)
    response = EvaluationLogListResponse(logs=[EvaluationLogResponse.model_validate(row) for row in rows])
    audit(status.HTTP_200_OK, count=len(rows))
    return response

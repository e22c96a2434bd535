import logging
import math
from typing import Any
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leaderboard.auth.dependencies import FORBIDDEN_DETAIL, get_request_auditor, require_session_user
from leaderboard.core import config
from leaderboard.database import get_db
from leaderboard.models.user import User
from leaderboard.routes.ranking_routes import INVALID_PROJECT_DETAIL, parse_project_number
from leaderboard.schemas import CamelModel, ScoreResponse
from leaderboard.services import scores as score_service
from leaderboard.services import uploads
from leaderboard.services.audit import RequestAuditor

router = APIRouter(tags=['my-results'])

logger = logging.getLogger(__name__)

INVALID_SUBMISSION_PROJECT_DETAIL = '프로젝트 번호가 올바르지 않습니다.'
INVALID_SCORE_DETAIL = '점수는 유효한 숫자여야 합니다.'
INVALID_RECORD_ID_DETAIL = '유효한 기록 ID가 필요합니다.'
RECORD_NOT_FOUND_DETAIL = '삭제할 기록을 찾을 수 없습니다.'
SAVE_FAILED_DETAIL = '결과 저장 중 오류가 발생했습니다.'
DELETE_FAILED_DETAIL = '결과 삭제 중 오류가 발생했습니다.'
FILE_NOT_FOUND_DETAIL = '파일을 찾을 수 없습니다.'
FILE_READ_FAILED_DETAIL = '파일을 읽는 중 오류가 발생했습니다.'


class MyResultsResponse(CamelModel):
    results: list[ScoreResponse]
    project_number: int | None = None


class SubmitResultResponse(CamelModel):
    success: bool = True
    result: ScoreResponse


class DeleteResultRequest(BaseModel):
    id: Any = None


class DeleteResultResponse(CamelModel):
    success: bool = True
    cleanup_warning: str | None = None


def parse_score(raw: str | None) -> float:
    if raw is None:
        raise ValueError('Score is required')
    value = float(raw.strip())
    if not math.isfinite(value):
        raise ValueError('Score must be finite')
    return value


def is_valid_record_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= config.MAX_RECORD_ID


@router.get('', response_model=MyResultsResponse)
def list_my_results(
    project: str | None = Query(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(require_session_user),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    try:
        project_number = parse_project_number(project, default=None)
    except ValueError as exc:
        audit(status.HTTP_400_BAD_REQUEST, reason='invalid_project', projectNumber=project)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_PROJECT_DETAIL) from exc

    results = [
        ScoreResponse.model_validate(record)
        for record in score_service.list_scores_for_user(db, user.id, project_number)
    ]
    audit(status.HTTP_200_OK, projectNumber=project_number, count=len(results))
    return MyResultsResponse(results=results, project_number=project_number)


@router.post('', response_model=SubmitResultResponse, status_code=status.HTTP_201_CREATED)
def submit_result(
    project_number: str | None = Form(default=None, alias='projectNumber'),
    score: str | None = Form(default=None),
    attachment: UploadFile | None = File(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(require_session_user),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    try:
        parsed_project = parse_project_number(project_number, default=None)
    except ValueError:
        parsed_project = None
    if parsed_project is None:
        audit(status.HTTP_400_BAD_REQUEST, reason='invalid_project', projectNumber=project_number)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_SUBMISSION_PROJECT_DETAIL)

    try:
        parsed_score = parse_score(score)
    except ValueError as exc:
        audit(status.HTTP_400_BAD_REQUEST, reason='invalid_score', score=score)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_SCORE_DETAIL) from exc

    file_name = attachment.filename if attachment is not None else None
    content = attachment.file.read(config.MAX_UPLOAD_BYTES + 1) if attachment is not None else b''

    try:
        record = score_service.submit_score(db, user, parsed_project, parsed_score, file_name, content)
    except uploads.AttachmentError as exc:
        audit(status.HTTP_400_BAD_REQUEST, reason=exc.reason, **exc.metadata)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    except (SQLAlchemyError, OSError) as exc:
        logger.exception('Failed to save score for user %s', user.id)
        audit(status.HTTP_500_INTERNAL_SERVER_ERROR, reason='insert_failed', projectNumber=parsed_project)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=SAVE_FAILED_DETAIL,
        ) from exc

    result = ScoreResponse.model_validate(record)
    audit(
        status.HTTP_201_CREATED,
        scoreId=result.id,
        projectNumber=result.project_number,
        score=result.score,
        fileName=result.file_name,
    )
    return SubmitResultResponse(result=result)


@router.delete('', response_model=DeleteResultResponse)
def delete_my_result(
    payload: DeleteResultRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_session_user),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    if not is_valid_record_id(payload.id):
        audit(status.HTTP_400_BAD_REQUEST, reason='invalid_id', id=payload.id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_RECORD_ID_DETAIL)

    record = score_service.find_score(db, payload.id, owner_id=user.id)
    if record is None:
        audit(status.HTTP_404_NOT_FOUND, reason='not_found', id=payload.id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=RECORD_NOT_FOUND_DETAIL)

    try:
        cleanup = score_service.delete_score(db, record, actor_user_id=user.id, source='self-delete')
    except SQLAlchemyError as exc:
        logger.exception('Failed to delete score %s', payload.id)
        audit(status.HTTP_500_INTERNAL_SERVER_ERROR, reason='delete_failed', id=payload.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=DELETE_FAILED_DETAIL,
        ) from exc

    audit(status.HTTP_200_OK, scoreId=payload.id, fileCleanup=cleanup.warning or 'ok')
    return DeleteResultResponse(cleanup_warning=cleanup.warning)


@router.get('/{record_id}/file')
def download_result_file(
    record_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_session_user),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    try:
        score_id = int(record_id)
    except ValueError:
        score_id = 0
    if not is_valid_record_id(score_id):
        audit(status.HTTP_400_BAD_REQUEST, reason='invalid_id', id=record_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='유효하지 않은 기록 ID입니다.')

    record = score_service.find_score(db, score_id)
    if record is None or not record.file_path:
        audit(status.HTTP_404_NOT_FOUND, reason='not_found', scoreId=score_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=FILE_NOT_FOUND_DETAIL)

    if record.user_id != user.id and not user.is_admin:
        audit(status.HTTP_403_FORBIDDEN, reason='forbidden', scoreId=score_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=FORBIDDEN_DETAIL)

    absolute_path = uploads.resolve_stored_file_path(record.file_path)
    if absolute_path is None:
        audit(status.HTTP_500_INTERNAL_SERVER_ERROR, reason='invalid_stored_path', scoreId=score_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=FILE_NOT_FOUND_DETAIL)

    try:
        content = absolute_path.read_bytes()
    except OSError as exc:
        logger.exception('Failed to read attachment for score %s', score_id)
        audit(status.HTTP_500_INTERNAL_SERVER_ERROR, reason='read_failed', scoreId=score_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=FILE_READ_FAILED_DETAIL,
        ) from exc

    file_name = record.file_name or absolute_path.name
    media_type = record.file_type or 'application/octet-stream'
    audit(status.HTTP_200_OK, scoreId=score_id, fileName=file_name)
    return Response(
        content=content,
        media_type=media_type,
        headers={'Content-Disposition': f'attachment; filename="{quote(file_name)}"'},
    )

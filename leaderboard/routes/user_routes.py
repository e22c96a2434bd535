import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leaderboard.auth import sessions
from leaderboard.auth.dependencies import get_request_auditor
from leaderboard.database import get_db
from leaderboard.routes.auth_routes import set_session_cookie
from leaderboard.schemas import CamelModel, PublicUserResponse, UserResponse
from leaderboard.services import users as user_service
from leaderboard.services.audit import RequestAuditor

router = APIRouter(tags=['users'])

logger = logging.getLogger(__name__)

CREATE_FAILED_DETAIL = '사용자 생성 중 오류가 발생했습니다.'


class RegisterUserRequest(CamelModel):
    name: str | None = None
    student_number: str | None = None
    email: str | None = None
    password: str | None = None


class RegisterUserResponse(CamelModel):
    success: bool = True
    user: UserResponse


class UserLookupResponse(CamelModel):
    exists: bool
    user: PublicUserResponse | None = None


@router.post('', response_model=RegisterUserResponse, status_code=status.HTTP_201_CREATED)
def register_user(
    payload: RegisterUserRequest,
    response: Response,
    db: Session = Depends(get_db),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    try:
        user = user_service.register_user(
            db,
            name=payload.name,
            student_number=payload.student_number,
            email=payload.email,
            password=payload.password,
        )
        session_token, _ = sessions.establish_user_session(db, user)
    except user_service.UserRequestError as exc:
        audit(exc.status_code, reason=exc.reason, **exc.metadata)
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to register user %s', payload.student_number)
        audit(status.HTTP_500_INTERNAL_SERVER_ERROR, reason='insert_failed')
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=CREATE_FAILED_DETAIL,
        ) from exc

    set_session_cookie(response, session_token)
    audit.user_id = user.id
    audit(status.HTTP_201_CREATED, studentNumber=user.student_number, role=user.role)
    return RegisterUserResponse(user=UserResponse.model_validate(user))


@router.get('/{student_number}', response_model=UserLookupResponse)
def get_user_by_student_number(
    student_number: str,
    db: Session = Depends(get_db),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    normalized = student_number.strip()
    if not user_service.is_valid_student_number(normalized):
        audit(status.HTTP_400_BAD_REQUEST, reason='invalid_student_number', studentNumber=student_number)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='유효하지 않은 학번 형식입니다.')

    user = user_service.find_user_by_student_number(db, normalized)
    audit(status.HTTP_200_OK, found=user is not None)
    return UserLookupResponse(
        exists=user is not None,
        user=PublicUserResponse.model_validate(user) if user is not None else None,
    )

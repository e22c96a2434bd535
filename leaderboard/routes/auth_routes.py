import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leaderboard.auth import sessions
from leaderboard.auth.dependencies import UNAUTHORIZED_DETAIL, get_request_auditor, get_session_user
from leaderboard.core import config
from leaderboard.database import get_db
from leaderboard.models.user import User
from leaderboard.schemas import CamelModel, UserResponse
from leaderboard.services import users as user_service
from leaderboard.services.audit import RequestAuditor

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)

LOGIN_FAILED_DETAIL = '로그인 처리 중 오류가 발생했습니다.'


class LoginRequest(CamelModel):
    student_number: str | None = None
    password: str | None = None


class AuthCheckRequest(CamelModel):
    student_number: str | None = None


class LoginResponse(CamelModel):
    success: bool = True
    user: UserResponse


class SessionValidationResponse(CamelModel):
    valid: bool
    user: UserResponse


class AuthCheckResponse(BaseModel):
    exists: bool


def set_session_cookie(response: Response, session_token: str) -> None:
    response.set_cookie(
        key=config.SESSION_COOKIE_NAME,
        value=session_token,
        max_age=config.SESSION_TTL_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=config.SESSION_COOKIE_SECURE,
        samesite='lax',
        path='/',
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=config.SESSION_COOKIE_NAME,
        httponly=True,
        secure=config.SESSION_COOKIE_SECURE,
        samesite='lax',
        path='/',
    )


@router.post('/login', response_model=LoginResponse)
def login(
    payload: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    try:
        user = user_service.authenticate_user(db, payload.student_number, payload.password)
    except user_service.UserRequestError as exc:
        audit(exc.status_code, reason=exc.reason, **exc.metadata)
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc

    try:
        session_token, _ = sessions.establish_user_session(db, user)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to create session for user %s', user.id)
        audit.user_id = user.id
        audit(status.HTTP_500_INTERNAL_SERVER_ERROR, reason='session_failed')
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=LOGIN_FAILED_DETAIL,
        ) from exc

    set_session_cookie(response, session_token)
    audit.user_id = user.id
    audit(status.HTTP_200_OK, studentNumber=user.student_number)
    return LoginResponse(user=UserResponse.model_validate(user))


@router.post('/logout')
def logout(
    request: Request,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_session_user),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    session_token = request.cookies.get(config.SESSION_COOKIE_NAME)
    if session_token:
        try:
            sessions.delete_session(db, session_token)
        except SQLAlchemyError:
            db.rollback()
            logger.exception('Failed to delete session on logout')

    if user is not None:
        audit.user_id = user.id
    audit(status.HTTP_303_SEE_OTHER, hadSession=bool(session_token))

    response = RedirectResponse(url='/login', status_code=status.HTTP_303_SEE_OTHER)
    clear_session_cookie(response)
    return response


@router.get('/session/validate', response_model=SessionValidationResponse)
def validate_session(user: User | None = Depends(get_session_user)):
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED_DETAIL)
    return SessionValidationResponse(valid=True, user=UserResponse.model_validate(user))


@router.post('/auth/check', response_model=AuthCheckResponse)
def check_student_number(
    payload: AuthCheckRequest,
    db: Session = Depends(get_db),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    student_number = (payload.student_number or '').strip()
    if not user_service.is_valid_student_number(student_number):
        audit(status.HTTP_400_BAD_REQUEST, reason='invalid_student_number')
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='학번 형식이 올바르지 않습니다.')

    exists = user_service.find_user_by_student_number(db, student_number) is not None
    audit(status.HTTP_200_OK, exists=exists)
    return AuthCheckResponse(exists=exists)

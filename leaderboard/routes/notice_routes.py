from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from leaderboard.auth.dependencies import get_request_auditor
from leaderboard.database import get_db
from leaderboard.schemas import NoticeResponse
from leaderboard.services import notices as notice_service
from leaderboard.services.audit import RequestAuditor

router = APIRouter(tags=['notices'])


class NoticeListResponse(BaseModel):
    notices: list[NoticeResponse]


@router.get('', response_model=NoticeListResponse)
def list_active_notices(
    db: Session = Depends(get_db),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    notices = [NoticeResponse.model_validate(notice) for notice in notice_service.list_active_notices(db)]
    audit(status.HTTP_200_OK, count=len(notices))
    return NoticeListResponse(notices=notices)

import re
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from leaderboard.auth.dependencies import get_request_auditor, require_session_user
from leaderboard.core import config
from leaderboard.core.clock import seoul_now
from leaderboard.database import get_db
from leaderboard.models.user import User
from leaderboard.schemas import CamelModel
from leaderboard.services import rankings as ranking_service
from leaderboard.services.audit import RequestAuditor

router = APIRouter(tags=['rankings'])

DEFAULT_PROJECT_NUMBER = 1
INVALID_PROJECT_DETAIL = '유효하지 않은 프로젝트 번호입니다.'
YEAR_PATTERN = re.compile(r'^\d{4}$')


class RankingRowResponse(CamelModel):
    id: int
    user_id: int
    public_id: str
    project_number: int
    score: float
    evaluated_at: datetime
    position: int


class BestScoreResponse(CamelModel):
    score: float
    evaluated_at: datetime


class RankingBoardResponse(CamelModel):
    rankings: list[RankingRowResponse]
    my_best_score: BestScoreResponse | None = None
    project_number: int
    selected_year: int
    available_years: list[int]
    my_rank: int | None = None


def parse_project_number(raw: str | None, default: int | None = DEFAULT_PROJECT_NUMBER) -> int | None:
    """Parse a project query parameter; ``None`` input yields ``default``.

    Raises ``ValueError`` for anything outside the configured project numbers.
    """
    if raw is None or raw.strip() == '':
        return default
    project_number = int(raw.strip())
    if project_number not in config.PROJECT_NUMBERS:
        raise ValueError(f'Unknown project number: {project_number}')
    return project_number


def resolve_selected_year(raw: str | None, available_years: list[int]) -> int:
    if raw is not None and YEAR_PATTERN.match(raw):
        return int(raw)
    if available_years:
        return available_years[0]
    return seoul_now().year


@router.get('', response_model=RankingBoardResponse)
def get_rankings(
    project: str | None = Query(default=None),
    year: str | None = Query(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(require_session_user),
    audit: RequestAuditor = Depends(get_request_auditor),
):
    try:
        project_number = parse_project_number(project)
    except ValueError as exc:
        audit(status.HTTP_400_BAD_REQUEST, reason='invalid_project', projectNumber=project)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_PROJECT_DETAIL) from exc

    distinct_years = ranking_service.list_distinct_user_years(db)
    selected_year = resolve_selected_year(year, distinct_years)
    available_years = sorted(set(distinct_years) | {selected_year}, reverse=True)

    rows = ranking_service.list_ranking_rows(db, project_number, selected_year)

    summary = None
    if user.cohort_year == selected_year:
        summary = ranking_service.get_ranking_summary_for_user(db, project_number, selected_year, user.id)

    board = RankingBoardResponse(
        rankings=[RankingRowResponse.model_validate(row) for row in rows],
        my_best_score=BestScoreResponse.model_validate(summary) if summary else None,
        project_number=project_number,
        selected_year=selected_year,
        available_years=available_years,
        my_rank=summary['rank'] if summary else None,
    )
    audit(status.HTTP_200_OK, projectNumber=project_number, selectedYear=selected_year)
    return board

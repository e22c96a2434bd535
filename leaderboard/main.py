import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from leaderboard.auth.middleware import SessionGateMiddleware
from leaderboard.core import config
from leaderboard.database import init_db
from leaderboard.routes import (
    admin_routes,
    auth_routes,
    notice_routes,
    ranking_routes,
    result_routes,
    user_routes,
)

INVALID_REQUEST_DETAIL = '잘못된 요청 형식입니다.'
INTERNAL_ERROR_DETAIL = 'Internal Server Error'

logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

logger = logging.getLogger(__name__)

app = FastAPI(title='Project Leaderboard API')

app.add_middleware(SessionGateMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.exception_handler(StarletteHTTPException)
async def render_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={'error': exc.detail},
        headers=getattr(exc, 'headers', None),
    )


@app.exception_handler(RequestValidationError)
async def render_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info('Rejected malformed request to %s %s: %s', request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={'error': INVALID_REQUEST_DETAIL})


@app.exception_handler(SQLAlchemyError)
async def render_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Unhandled database error on %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={'error': INTERNAL_ERROR_DETAIL},
    )


@app.exception_handler(Exception)
async def render_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={'error': INTERNAL_ERROR_DETAIL},
    )


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        init_db()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL.')


@app.get('/')
def root():
    return {'status': 'Leaderboard API Running'}


app.include_router(auth_routes.router, prefix='/api')
app.include_router(user_routes.router, prefix='/api/users')
app.include_router(notice_routes.router, prefix='/api/notices')
app.include_router(ranking_routes.router, prefix='/api/rankings')
app.include_router(result_routes.router, prefix='/api/my-results')
app.include_router(admin_routes.router, prefix='/api/admin')

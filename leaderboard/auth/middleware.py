"""Redirect anonymous browser navigations to the login page.

API routes are left alone; their dependencies answer with JSON 401/403.
Only the presence of the session cookie is checked here, the guards validate
it against the session store.
"""

from typing import Iterable
from urllib.parse import urlencode

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import RedirectResponse

from leaderboard.core import config

API_PREFIX = '/api/'

# Exact paths, or prefixes when ending with a slash.
DEFAULT_PUBLIC_PATHS: tuple[str, ...] = (
    '/',
    '/login',
    '/docs',
    '/redoc',
    '/openapi.json',
    '/favicon.ico',
    '/robots.txt',
    '/static/',
)


def _is_public(path: str, public_paths: Iterable[str]) -> bool:
    for public_path in public_paths:
        if public_path.endswith('/') and public_path != '/' and path.startswith(public_path):
            return True
        if path == public_path:
            return True
    return False


def build_login_redirect(request: Request) -> RedirectResponse:
    target = request.url.path
    if request.url.query:
        target = f'{target}?{request.url.query}'
    return RedirectResponse(url=f'/login?{urlencode({"redirect": target})}', status_code=307)


class SessionGateMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, public_paths: Iterable[str] = DEFAULT_PUBLIC_PATHS) -> None:
        super().__init__(app)
        self.public_paths = tuple(public_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        path = request.url.path
        if (
            request.method == 'OPTIONS'
            or path == API_PREFIX.rstrip('/')
            or path.startswith(API_PREFIX)
            or _is_public(path, self.public_paths)
        ):
            return await call_next(request)

        if not request.cookies.get(config.SESSION_COOKIE_NAME):
            return build_login_redirect(request)

        return await call_next(request)

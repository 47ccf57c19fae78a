"""Request gate: coarse authentication routing before any handler runs.

Decisions use only the path, the method, whether a session cookie is
present and whether a bearer header is present. The gate never touches
the database; handlers still resolve and authorize the identity.

In order:
1. Auth pages (/sign-in, /sign-up): a valid cookie → /dashboard
2. API paths: agent paths need a bearer header, other API paths need a
   cookie or a bearer header; otherwise 401
3. Public paths pass through
4. Protected pages: no cookie → /sign-in?redirect=<path>

GET requests carrying a cookie get a sliding refresh. A cookie that no
longer verifies is deleted.
"""

from typing import Optional
from urllib.parse import urlencode

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from tcp_platform.auth.session import (
    bearer_token,
    clear_session,
    read_user_session,
    refresh_user_session,
    set_session_cookie,
)
from tcp_platform.auth.tokens import TokenError
from tcp_platform.config import settings

logger = structlog.get_logger()

AUTH_PAGES = ("/sign-in", "/sign-up")
PUBLIC_PATHS = frozenset({"/", "/sign-in", "/sign-up", "/health"})
API_PREFIX = "/api"
AGENT_API_PREFIX = "/api/agent"
DASHBOARD_PATH = "/dashboard"
SIGN_IN_PATH = "/sign-in"


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def _redirect_status(method: str) -> int:
    # 303 turns a redirected form POST into a GET of the target page.
    return 307 if method in ("GET", "HEAD") else 303


def _unauthorized(detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"detail": detail, "code": "invalid_credentials"},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _sets_session_cookie(response: Response) -> bool:
    prefix = f"{settings.session_cookie_name}="
    return any(
        value.startswith(prefix) for value in response.headers.getlist("set-cookie")
    )


class RequestGateMiddleware(BaseHTTPMiddleware):
    """Redirect or reject requests that cannot possibly be authorized."""

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        cookie = request.cookies.get(settings.session_cookie_name)
        has_bearer = bearer_token(request.headers.get("authorization")) is not None

        if any(_under(path, page) for page in AUTH_PAGES):
            if cookie and read_user_session(request) is not None:
                return RedirectResponse(
                    DASHBOARD_PATH, status_code=_redirect_status(request.method)
                )
            return await call_next(request)

        if _under(path, API_PREFIX):
            if _under(path, AGENT_API_PREFIX):
                if not has_bearer:
                    return _unauthorized("Missing bearer credential")
                return await call_next(request)
            if not cookie and not has_bearer:
                return _unauthorized("Authentication required")
            if cookie and request.method == "GET":
                return await self._refreshing(request, call_next, cookie)
            return await call_next(request)

        if path in PUBLIC_PATHS:
            return await call_next(request)

        if not cookie:
            return self._to_sign_in(path, request.method)
        if request.method == "GET":
            return await self._refreshing(request, call_next, cookie, redirect_on_failure=True)
        return await call_next(request)

    async def _refreshing(
        self,
        request: Request,
        call_next,
        cookie: str,
        redirect_on_failure: bool = False,
    ) -> Response:
        """Run the request and slide the session's expiry forward."""
        try:
            refreshed: Optional[tuple] = refresh_user_session(cookie)
        except TokenError as e:
            logger.info(
                "gate.session_refresh_failed",
                path=request.url.path,
                reason=type(e).__name__,
            )
            if redirect_on_failure:
                response = self._to_sign_in(request.url.path, request.method)
            else:
                response = await call_next(request)
            clear_session(response)
            return response

        response = await call_next(request)
        # A handler that wrote or cleared the cookie itself wins.
        if refreshed is not None and not _sets_session_cookie(response):
            token, payload = refreshed
            set_session_cookie(response, token, payload.expires)
        return response

    @staticmethod
    def _to_sign_in(path: str, method: str) -> RedirectResponse:
        return RedirectResponse(
            f"{SIGN_IN_PATH}?{urlencode({'redirect': path})}",
            status_code=_redirect_status(method),
        )

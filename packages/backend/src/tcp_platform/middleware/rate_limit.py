"""Rate limiting middleware: Redis fixed-window counter per IP.

Keys look like "tcp:rl:{ip}:{bucket}:{minute}". Credential exchanges
(sign-in, sign-up, agent register/authenticate) share the stricter
"auth" bucket to slow down guessing.

Skipped entirely when Redis is unavailable (e.g. in tests).
"""

import time

import structlog
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from tcp_platform.db.cache import get_redis

logger = structlog.get_logger()

AUTH_PATHS = (
    "/sign-in",
    "/sign-up",
    "/api/agent/register",
    "/api/agent/authenticate",
)


def is_auth_path(path: str) -> bool:
    return any(path == p or path.startswith(p + "/") for p in AUTH_PATHS)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per IP, per minute request budget."""

    def __init__(self, app, default_rpm: int = 100, auth_rpm: int = 10):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.auth_rpm = auth_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        # Only POSTs exchange credentials; viewing the form is not limited.
        is_auth = request.method == "POST" and is_auth_path(request.url.path)
        rpm = self.auth_rpm if is_auth else self.default_rpm
        bucket = "auth" if is_auth else "api"
        key = f"tcp:rl:{client_ip}:{bucket}:{int(time.time() // 60)}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)
        except RedisError as e:
            logger.warning("rate_limit.redis_error", error=str(e))
            return await call_next(request)

        if count > rpm:
            logger.info("rate_limit.exceeded", bucket=bucket, client_ip=client_ip)
            return JSONResponse(
                status_code=429,
                content={
                    "detail": "Rate limit exceeded. Try again later.",
                    "code": "rate_limited",
                },
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response

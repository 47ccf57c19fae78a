"""FastAPI application factory.

create_app() returns a configured FastAPI instance. The lifespan opens
and closes Redis and the database engine; middleware, exception
handlers and routers are all registered here.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from tcp_platform import __version__
from tcp_platform.api import api_router, health_router, page_router
from tcp_platform.config import settings
from tcp_platform.errors import PlatformError
from tcp_platform.logging_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown. Redis is optional, the database is not."""
    logger.info(
        "tcp_platform.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from tcp_platform.db.cache import close_redis, init_redis

    try:
        await init_redis()
        logger.info("tcp_platform.redis_connected")
    except (RedisError, OSError) as e:
        logger.warning("tcp_platform.redis_unavailable", error=str(e))

    yield

    logger.info("tcp_platform.shutdown")
    await close_redis()

    from tcp_platform.db.engine import engine

    await engine.dispose()


async def platform_error_handler(request: Request, exc: PlatformError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    if exc.status_code >= 500:
        logger.error("request.failed", code=exc.code, detail=exc.message)
    else:
        logger.info("request.rejected", status=exc.status_code, code=exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("request.database_error", error_type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "internal_error"},
    )


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="TCP Agent Platform",
        description="Control plane for transfer agents: users, companies, projects and agent credentials",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_exception_handler(PlatformError, platform_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)

    # ── Middleware stack ──────────────────────────────────────
    # Starlette runs middleware in reverse order of registration.
    # Request flow: RequestId → Security → RateLimit → CORS → Gate → handler

    from tcp_platform.middleware.gate import RequestGateMiddleware
    from tcp_platform.middleware.rate_limit import RateLimitMiddleware
    from tcp_platform.middleware.request_id import RequestIdMiddleware
    from tcp_platform.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestGateMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(health_router, tags=["health"])
    app.include_router(page_router, tags=["pages"])
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: tcp_platform.main:app)
app = create_app()

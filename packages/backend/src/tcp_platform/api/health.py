"""Health check endpoint: server up, Postgres and Redis reachable.

Public: the request gate lets /health through without a session.
"""

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from tcp_platform import __version__
from tcp_platform.db import cache
from tcp_platform.db.engine import engine

router = APIRouter()


@router.get("/health")
async def health_check():
    checks = {"server": "ok", "version": __version__}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        checks["database"] = f"error: {type(e).__name__}"

    # Redis only backs rate limiting, so "disabled" is not a failure.
    try:
        await cache.get_redis().ping()
        checks["redis"] = "ok"
    except RuntimeError:
        checks["redis"] = "disabled"
    except Exception as e:
        checks["redis"] = f"error: {type(e).__name__}"

    healthy = checks["database"] == "ok" and checks["redis"] in ("ok", "disabled")
    return {"status": "healthy" if healthy else "degraded", **checks}

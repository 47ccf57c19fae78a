"""API route aggregation.

All routers registered here get mounted in main.py.

- page_router: browser pages at the root (/sign-in, /sign-up, /dashboard, ...)
- api_router:  /api/v1 (user sessions) and /api/agent (agent credentials)

Authentication happens in two layers: the request gate middleware turns
away requests with no credential at all, and each handler's Depends()
resolves the identity and checks permissions.
"""

from fastapi import APIRouter

from tcp_platform.api.agent import router as agent_router
from tcp_platform.api.agents import router as agents_router
from tcp_platform.api.auth import router as auth_router
from tcp_platform.api.companies import router as companies_router
from tcp_platform.api.health import router as health_router
from tcp_platform.api.pages import router as page_router
from tcp_platform.api.projects import router as projects_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(auth_router, tags=["auth"])
v1_router.include_router(companies_router, tags=["companies", "members", "invitations"])
v1_router.include_router(projects_router, tags=["projects", "members", "invitations"])
v1_router.include_router(agents_router, tags=["agents"])

api_router = APIRouter(prefix="/api")
api_router.include_router(v1_router)
api_router.include_router(agent_router, tags=["agent"])

__all__ = ["api_router", "health_router", "page_router"]

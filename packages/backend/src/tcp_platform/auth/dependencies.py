"""FastAPI auth dependencies.

Used as Depends() in route handlers to turn the request's credentials
into a resolved identity.

Two identities:
1. Users: session cookie, or `Authorization: Bearer <session token>`
   for API clients. Verified with the process key.
2. Agents: `Authorization: Bearer <agent token>`, verified with the
   agent's own key.

Permission dependencies are factories:

    @router.get("/members")
    async def members(ctx: UserContext = Depends(require_company_permission("company:members:read"))):
"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tcp_platform.auth.context import ContextResolver, UserContext
from tcp_platform.auth.session import bearer_token, get_session_from_header, read_user_session
from tcp_platform.db.engine import get_db
from tcp_platform.errors import AccessDenied, InvalidCredentials
from tcp_platform.schemas.session import UserSessionData
from tcp_platform.services.agent_service import AgentContext, AgentService

NO_COMPANY_CONTEXT = "No company context. Please select a company."
NO_PROJECT_CONTEXT = "No project context. Please select a project."
INSUFFICIENT_PERMISSIONS = "Insufficient permissions"


async def get_user_session(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> Optional[UserSessionData]:
    """Cookie first, then bearer header. None if neither verifies."""
    return read_user_session(request) or get_session_from_header(authorization)


async def get_user_context_optional(
    session: Optional[UserSessionData] = Depends(get_user_session),
    db: AsyncSession = Depends(get_db),
) -> Optional[UserContext]:
    return await ContextResolver(db).resolve(session)


async def get_user_context(
    context: Optional[UserContext] = Depends(get_user_context_optional),
) -> UserContext:
    """Resolved user context (401 if there is no valid session)."""
    if context is None:
        raise InvalidCredentials("Authentication required")
    return context


def require_company_permission(permission: str):
    """Dependency factory: current company role must grant `permission`."""

    async def dependency(context: UserContext = Depends(get_user_context)) -> UserContext:
        if context.company is None:
            raise AccessDenied(NO_COMPANY_CONTEXT)
        if not context.can_company(permission):
            raise AccessDenied(INSUFFICIENT_PERMISSIONS)
        return context

    return dependency


def require_project_permission(permission: str):
    """Dependency factory: current project role must grant `permission`."""

    async def dependency(context: UserContext = Depends(get_user_context)) -> UserContext:
        if context.company is None:
            raise AccessDenied(NO_COMPANY_CONTEXT)
        if context.project is None:
            raise AccessDenied(NO_PROJECT_CONTEXT)
        if not context.can_project(permission):
            raise AccessDenied(INSUFFICIENT_PERMISSIONS)
        return context

    return dependency


async def get_agent_context(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> AgentContext:
    """Agent identity from its bearer token (401 on any failure)."""
    context = await AgentService(db).authenticate_bearer(bearer_token(authorization))
    if context is None:
        raise InvalidCredentials("Invalid or expired agent token")
    return context


def require_bearer(authorization: Optional[str] = Header(None)) -> str:
    """The raw bearer credential, for endpoints that exchange one."""
    token = bearer_token(authorization)
    if token is None:
        raise InvalidCredentials("Missing bearer credential")
    return token

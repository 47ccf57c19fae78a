"""Auth API: current user, password, scope switching, invitations.

- GET  /auth/me              → user plus current company/project scope
- POST /auth/password        → change password (current one required)
- POST /auth/switch-company  → rewrite session cookie, project dropped
- POST /auth/switch-project  → rewrite session cookie, owning company adopted
- POST /invitations/accept   → existing user joins via an invitation token

Switching and accepting answer with the new scope and set a fresh cookie.
Every switch is written to the activity log.
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from tcp_platform.auth import rbac
from tcp_platform.auth.context import ContextResolver, UserContext
from tcp_platform.auth.dependencies import get_user_context
from tcp_platform.auth.session import write_user_session
from tcp_platform.db.engine import get_db
from tcp_platform.schemas.auth import (
    AcceptInvitation,
    CompanyScope,
    MeResponse,
    PasswordUpdate,
    ProjectScope,
    SwitchCompany,
    SwitchProject,
    UserRead,
)
from tcp_platform.services.auth_service import AuthService

router = APIRouter()


def me_response(context: UserContext) -> MeResponse:
    company = None
    if context.company:
        company = CompanyScope(
            id=context.company.company_id,
            slug=context.company.slug,
            name=context.company.name,
            role=context.company.role,
            permissions=sorted(rbac.get_company_permissions(context.company.role)),
        )
    project = None
    if context.project:
        project = ProjectScope(
            id=context.project.project_id,
            company_id=context.project.company_id,
            slug=context.project.slug,
            name=context.project.name,
            role=context.project.role,
            permissions=sorted(rbac.get_project_permissions(context.project.role)),
        )
    return MeResponse(
        user=UserRead.model_validate(context.user), company=company, project=project
    )


@router.get("/auth/me", response_model=MeResponse)
async def me(context: UserContext = Depends(get_user_context)):
    return me_response(context)


@router.post("/auth/password", status_code=204)
async def update_password(
    body: PasswordUpdate,
    context: UserContext = Depends(get_user_context),
    db: AsyncSession = Depends(get_db),
):
    await AuthService(db).update_password(
        context.user, body.current_password, body.new_password, body.confirm_password
    )
    return Response(status_code=204)


@router.post("/auth/switch-company", response_model=MeResponse)
async def switch_company(
    body: SwitchCompany,
    response: Response,
    context: UserContext = Depends(get_user_context),
    db: AsyncSession = Depends(get_db),
):
    switched = await ContextResolver(db).switch_company(context.user, body.company_id)
    await AuthService(db).record_switch(switched)
    write_user_session(response, switched.to_session())
    return me_response(switched)


@router.post("/auth/switch-project", response_model=MeResponse)
async def switch_project(
    body: SwitchProject,
    response: Response,
    context: UserContext = Depends(get_user_context),
    db: AsyncSession = Depends(get_db),
):
    switched = await ContextResolver(db).switch_project(context.user, body.project_id)
    await AuthService(db).record_switch(switched)
    write_user_session(response, switched.to_session())
    return me_response(switched)


@router.post("/invitations/accept", response_model=MeResponse)
async def accept_invitation(
    body: AcceptInvitation,
    response: Response,
    context: UserContext = Depends(get_user_context),
    db: AsyncSession = Depends(get_db),
):
    """Join a company or project. The session moves into the new scope."""
    joined = await AuthService(db).accept_invitation(context.user, body.token)
    write_user_session(response, joined.to_session())
    return me_response(joined)

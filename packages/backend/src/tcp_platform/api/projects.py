"""Project API routes: projects of the current company, project members,
project invitations.

/company/projects is guarded by company permissions; /project/* acts on
the project in the caller's session and is guarded by project permissions.
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from tcp_platform.api.companies import member_read
from tcp_platform.auth.context import UserContext
from tcp_platform.auth.dependencies import require_company_permission, require_project_permission
from tcp_platform.db.engine import get_db
from tcp_platform.db.models import User
from tcp_platform.schemas.company import (
    InvitationRead,
    MemberRead,
    ProjectCreate,
    ProjectInvitationCreate,
    ProjectRead,
    ProjectRoleUpdate,
)
from tcp_platform.services.company_service import CompanyService

router = APIRouter()


def _svc(db: AsyncSession = Depends(get_db)) -> CompanyService:
    return CompanyService(db)


# ─── Projects ───────────────────────────────────────────

@router.get("/company/projects", response_model=list[ProjectRead])
async def list_projects(
    context: UserContext = Depends(require_company_permission("company:read")),
    svc: CompanyService = Depends(_svc),
):
    return await svc.list_projects(context.company.company_id)


@router.post("/company/projects", response_model=ProjectRead, status_code=201)
async def create_project(
    body: ProjectCreate,
    context: UserContext = Depends(require_company_permission("company:projects:create")),
    svc: CompanyService = Depends(_svc),
):
    """Create a project; the creator becomes its project_owner."""
    project, _ = await svc.create_project(
        context.company, context.user, body.name, body.slug, body.description
    )
    return project


# ─── Members ────────────────────────────────────────────

@router.get("/project/members", response_model=list[MemberRead])
async def list_members(
    context: UserContext = Depends(require_project_permission("project:members:read")),
    svc: CompanyService = Depends(_svc),
):
    rows = await svc.list_project_members(context.project.project_id)
    return [member_read(m, u) for m, u in rows]


@router.patch("/project/members/{user_id}", response_model=MemberRead)
async def change_member_role(
    user_id: int,
    body: ProjectRoleUpdate,
    context: UserContext = Depends(require_project_permission("project:members:write")),
    svc: CompanyService = Depends(_svc),
):
    member = await svc.change_project_member_role(
        context.project, context.user.id, user_id, body.role.value
    )
    user = await svc.db.get(User, member.user_id)
    return member_read(member, user)


@router.delete("/project/members/{user_id}", status_code=204)
async def remove_member(
    user_id: int,
    context: UserContext = Depends(require_project_permission("project:members:delete")),
    svc: CompanyService = Depends(_svc),
):
    await svc.remove_project_member(context.project, context.user.id, user_id)
    return Response(status_code=204)


# ─── Invitations ────────────────────────────────────────

@router.post("/project/invitations", response_model=InvitationRead, status_code=201)
async def invite_member(
    body: ProjectInvitationCreate,
    context: UserContext = Depends(require_project_permission("project:invites:create")),
    svc: CompanyService = Depends(_svc),
):
    return await svc.invite_project_member(
        context.project, context.user.id, body.email, body.role.value
    )

"""Company API routes: companies, company members, company invitations.

Everything under /company acts on the company in the caller's session
and is guarded by a company permission. Role changes additionally go
through the precedence rules in the service.
"""

from typing import Union

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from tcp_platform.auth.context import ContextResolver, UserContext
from tcp_platform.auth.dependencies import get_user_context, require_company_permission
from tcp_platform.db.engine import get_db
from tcp_platform.db.models import CompanyMember, ProjectMember, User
from tcp_platform.events.store import ActivityStore
from tcp_platform.schemas.company import (
    ActivityLogRead,
    CompanyCreate,
    CompanyInvitationCreate,
    CompanyRead,
    CompanyRoleUpdate,
    CompanyWithRole,
    InvitationRead,
    MemberRead,
)
from tcp_platform.services.company_service import CompanyService

router = APIRouter()


def _svc(db: AsyncSession = Depends(get_db)) -> CompanyService:
    return CompanyService(db)


def member_read(member: Union[CompanyMember, ProjectMember], user: User) -> MemberRead:
    return MemberRead(
        user_id=user.id,
        email=user.email,
        name=user.name,
        role=member.role,
        joined_at=member.joined_at,
    )


# ─── Companies ──────────────────────────────────────────

@router.get("/companies", response_model=list[CompanyWithRole])
async def list_companies(
    context: UserContext = Depends(get_user_context),
    db: AsyncSession = Depends(get_db),
):
    """Companies the caller belongs to, with their role in each."""
    rows = await ContextResolver(db).companies_for_user(context.user.id)
    return [
        CompanyWithRole(**CompanyRead.model_validate(c).model_dump(), role=m.role)
        for c, m in rows
    ]


@router.post("/companies", response_model=CompanyWithRole, status_code=201)
async def create_company(
    body: CompanyCreate,
    context: UserContext = Depends(get_user_context),
    svc: CompanyService = Depends(_svc),
):
    company, member = await svc.create_company(context.user, body.name, body.slug)
    return CompanyWithRole(**CompanyRead.model_validate(company).model_dump(), role=member.role)


# ─── Members ────────────────────────────────────────────

@router.get("/company/members", response_model=list[MemberRead])
async def list_members(
    context: UserContext = Depends(require_company_permission("company:members:read")),
    svc: CompanyService = Depends(_svc),
):
    rows = await svc.list_company_members(context.company.company_id)
    return [member_read(m, u) for m, u in rows]


@router.patch("/company/members/{user_id}", response_model=MemberRead)
async def change_member_role(
    user_id: int,
    body: CompanyRoleUpdate,
    context: UserContext = Depends(require_company_permission("company:members:write")),
    svc: CompanyService = Depends(_svc),
):
    member = await svc.change_company_member_role(
        context.company, context.user.id, user_id, body.role.value
    )
    user = await svc.db.get(User, member.user_id)
    return member_read(member, user)


@router.delete("/company/members/{user_id}", status_code=204)
async def remove_member(
    user_id: int,
    context: UserContext = Depends(require_company_permission("company:members:delete")),
    svc: CompanyService = Depends(_svc),
):
    await svc.remove_company_member(context.company, context.user.id, user_id)
    return Response(status_code=204)


# ─── Invitations ────────────────────────────────────────

@router.get("/company/invitations", response_model=list[InvitationRead])
async def list_invitations(
    context: UserContext = Depends(require_company_permission("company:invites:create")),
    svc: CompanyService = Depends(_svc),
):
    return await svc.list_company_invitations(context.company.company_id)


@router.post("/company/invitations", response_model=InvitationRead, status_code=201)
async def invite_member(
    body: CompanyInvitationCreate,
    context: UserContext = Depends(require_company_permission("company:invites:create")),
    svc: CompanyService = Depends(_svc),
):
    """Invite by email. The token in the response is the invitation link secret."""
    return await svc.invite_company_member(
        context.company, context.user.id, body.email, body.role.value
    )


@router.delete("/company/invitations/{invitation_id}", status_code=204)
async def revoke_invitation(
    invitation_id: int,
    context: UserContext = Depends(require_company_permission("company:invites:revoke")),
    svc: CompanyService = Depends(_svc),
):
    await svc.revoke_company_invitation(context.company, context.user.id, invitation_id)
    return Response(status_code=204)


# ─── Activity ───────────────────────────────────────────

@router.get("/company/activity", response_model=list[ActivityLogRead])
async def company_activity(
    limit: int = Query(100, ge=1, le=1000),
    context: UserContext = Depends(require_company_permission("company:members:read")),
    db: AsyncSession = Depends(get_db),
):
    """Most recent user activity in the current company."""
    return await ActivityStore(db).for_company(context.company.company_id, limit=limit)

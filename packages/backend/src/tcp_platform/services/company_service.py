"""Company service: companies, projects, memberships and invitations.

Routes check the coarse permission (e.g. company:members:write) before
calling in; this layer enforces the role precedence rules from rbac.py
and the "at least one owner" invariants, which depend on the rows.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tcp_platform.auth import rbac
from tcp_platform.auth.context import CompanyContext, ProjectContext
from tcp_platform.auth.password import generate_invitation_token
from tcp_platform.config import settings
from tcp_platform.db.models import (
    Company,
    CompanyInvitation,
    CompanyMember,
    Project,
    ProjectInvitation,
    ProjectMember,
    User,
)
from tcp_platform.errors import AccessDenied, Conflict, NotFound
from tcp_platform.events import types as activity
from tcp_platform.events.store import ActivityStore
from tcp_platform.services.slugs import ensure_unique_slug, generate_slug

logger = structlog.get_logger()


def _invitation_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=settings.invitation_days)


class CompanyService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.activity = ActivityStore(db)

    # ─── Companies ──────────────────────────────────────

    async def create_company(
        self, user: User, name: str, slug: Optional[str] = None
    ) -> tuple[Company, CompanyMember]:
        """Create a company with `user` as its owner."""
        if slug:
            if await self._company_slug_taken(slug):
                raise Conflict(f"Company slug '{slug}' is already taken.")
        else:
            slug = await ensure_unique_slug(self.db, Company, generate_slug(name))

        company = Company(name=name, slug=slug)
        self.db.add(company)
        await self.db.flush()

        member = CompanyMember(
            company_id=company.id, user_id=user.id, role=rbac.CompanyRole.OWNER.value
        )
        self.db.add(member)
        await self.activity.record(
            activity.CREATE_COMPANY,
            user_id=user.id,
            company_id=company.id,
            metadata={"slug": slug},
        )
        await self.db.commit()
        logger.info("company.created", company_id=company.id, user_id=user.id)
        return company, member

    async def _company_slug_taken(self, slug: str) -> bool:
        result = await self.db.execute(select(Company.id).where(Company.slug == slug))
        return result.first() is not None

    # ─── Company members ────────────────────────────────

    async def list_company_members(
        self, company_id: int
    ) -> list[tuple[CompanyMember, User]]:
        result = await self.db.execute(
            select(CompanyMember, User)
            .join(User, User.id == CompanyMember.user_id)
            .where(CompanyMember.company_id == company_id)
            .order_by(User.email)
        )
        return [(m, u) for m, u in result.all()]

    async def _company_member(self, company_id: int, user_id: int) -> CompanyMember:
        result = await self.db.execute(
            select(CompanyMember).where(
                CompanyMember.company_id == company_id,
                CompanyMember.user_id == user_id,
            )
        )
        member = result.scalars().first()
        if not member:
            raise NotFound("Member not found")
        return member

    async def _owner_count(self, company_id: int) -> int:
        result = await self.db.execute(
            select(func.count(CompanyMember.id)).where(
                CompanyMember.company_id == company_id,
                CompanyMember.role == rbac.CompanyRole.OWNER.value,
            )
        )
        return result.scalar_one()

    async def change_company_member_role(
        self, actor: CompanyContext, actor_user_id: int, user_id: int, role: str
    ) -> CompanyMember:
        """Change a member's role. The actor must outrank both the old and new role."""
        member = await self._company_member(actor.company_id, user_id)
        if not (
            rbac.can_manage_company_role(actor.role, member.role)
            and rbac.can_manage_company_role(actor.role, role)
        ):
            raise AccessDenied("You cannot change this member's role.")

        if (
            member.role == rbac.CompanyRole.OWNER.value
            and role != rbac.CompanyRole.OWNER.value
            and await self._owner_count(actor.company_id) <= 1
        ):
            raise Conflict("A company must keep at least one owner.")

        previous = member.role
        member.role = role
        await self.activity.record(
            activity.UPDATE_COMPANY_MEMBER_ROLE,
            user_id=actor_user_id,
            company_id=actor.company_id,
            metadata={"member_id": user_id, "from": previous, "to": role},
        )
        await self.db.commit()
        logger.info(
            "company.member_role_changed",
            company_id=actor.company_id,
            member_id=user_id,
            role=role,
        )
        return member

    async def remove_company_member(
        self, actor: CompanyContext, actor_user_id: int, user_id: int
    ) -> None:
        """Remove a member and their memberships in the company's projects."""
        member = await self._company_member(actor.company_id, user_id)
        if not rbac.can_manage_company_role(actor.role, member.role):
            raise AccessDenied("You cannot remove this member.")
        if (
            member.role == rbac.CompanyRole.OWNER.value
            and await self._owner_count(actor.company_id) <= 1
        ):
            raise Conflict("A company must keep at least one owner.")

        project_ids = select(Project.id).where(Project.company_id == actor.company_id)
        await self.db.execute(
            delete(ProjectMember).where(
                ProjectMember.user_id == user_id,
                ProjectMember.project_id.in_(project_ids),
            )
        )
        await self.db.delete(member)
        await self.activity.record(
            activity.REMOVE_COMPANY_MEMBER,
            user_id=actor_user_id,
            company_id=actor.company_id,
            metadata={"member_id": user_id},
        )
        await self.db.commit()
        logger.info("company.member_removed", company_id=actor.company_id, member_id=user_id)

    # ─── Company invitations ────────────────────────────

    async def invite_company_member(
        self, actor: CompanyContext, actor_user_id: int, email: str, role: str
    ) -> CompanyInvitation:
        if not rbac.can_manage_company_role(actor.role, role):
            raise AccessDenied(f"You cannot invite members as '{role}'.")
        if await self._is_company_member_email(actor.company_id, email):
            raise Conflict("This user is already a member of the company.")

        invitation = CompanyInvitation(
            company_id=actor.company_id,
            email=email.strip().lower(),
            role=role,
            invited_by=actor_user_id,
            status="pending",
            token=generate_invitation_token(),
            expires_at=_invitation_expiry(),
        )
        self.db.add(invitation)
        await self.activity.record(
            activity.INVITE_COMPANY_MEMBER,
            user_id=actor_user_id,
            company_id=actor.company_id,
            metadata={"email": invitation.email, "role": role},
        )
        await self.db.commit()
        logger.info("company.member_invited", company_id=actor.company_id, role=role)
        return invitation

    async def list_company_invitations(self, company_id: int) -> list[CompanyInvitation]:
        result = await self.db.execute(
            select(CompanyInvitation)
            .where(
                CompanyInvitation.company_id == company_id,
                CompanyInvitation.status == "pending",
            )
            .order_by(CompanyInvitation.id)
        )
        return list(result.scalars().all())

    async def revoke_company_invitation(
        self, actor: CompanyContext, actor_user_id: int, invitation_id: int
    ) -> None:
        invitation = await self.db.get(CompanyInvitation, invitation_id)
        if not invitation or invitation.company_id != actor.company_id:
            raise NotFound("Invitation not found")
        if invitation.status != "pending":
            raise Conflict("Only pending invitations can be revoked.")
        invitation.status = "revoked"
        await self.activity.record(
            activity.REVOKE_COMPANY_INVITATION,
            user_id=actor_user_id,
            company_id=actor.company_id,
            metadata={"invitation_id": invitation_id},
        )
        await self.db.commit()

    async def _is_company_member_email(self, company_id: int, email: str) -> bool:
        result = await self.db.execute(
            select(CompanyMember.id)
            .join(User, User.id == CompanyMember.user_id)
            .where(
                CompanyMember.company_id == company_id,
                func.lower(User.email) == email.strip().lower(),
            )
        )
        return result.first() is not None

    # ─── Projects ───────────────────────────────────────

    async def list_projects(self, company_id: int) -> list[Project]:
        result = await self.db.execute(
            select(Project)
            .where(Project.company_id == company_id, Project.deleted_at.is_(None))
            .order_by(Project.name, Project.id)
        )
        return list(result.scalars().all())

    async def create_project(
        self,
        actor: CompanyContext,
        user: User,
        name: str,
        slug: Optional[str] = None,
        description: Optional[str] = None,
    ) -> tuple[Project, ProjectMember]:
        """Create a project in the actor's company; the creator owns it."""
        in_company = Project.company_id == actor.company_id
        if slug:
            taken = await self.db.execute(
                select(Project.id).where(Project.slug == slug, in_company)
            )
            if taken.first():
                raise Conflict(f"Project slug '{slug}' is already taken.")
        else:
            slug = await ensure_unique_slug(
                self.db, Project, generate_slug(name), in_company
            )

        project = Project(
            company_id=actor.company_id, name=name, slug=slug, description=description
        )
        self.db.add(project)
        await self.db.flush()

        member = ProjectMember(
            project_id=project.id,
            user_id=user.id,
            role=rbac.ProjectRole.PROJECT_OWNER.value,
        )
        self.db.add(member)
        await self.activity.record(
            activity.CREATE_PROJECT,
            user_id=user.id,
            company_id=actor.company_id,
            metadata={"project_id": project.id, "slug": slug},
        )
        await self.db.commit()
        logger.info("project.created", project_id=project.id, company_id=actor.company_id)
        return project, member

    # ─── Project members ────────────────────────────────

    async def list_project_members(
        self, project_id: int
    ) -> list[tuple[ProjectMember, User]]:
        result = await self.db.execute(
            select(ProjectMember, User)
            .join(User, User.id == ProjectMember.user_id)
            .where(ProjectMember.project_id == project_id)
            .order_by(User.email)
        )
        return [(m, u) for m, u in result.all()]

    async def _project_member(self, project_id: int, user_id: int) -> ProjectMember:
        result = await self.db.execute(
            select(ProjectMember).where(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == user_id,
            )
        )
        member = result.scalars().first()
        if not member:
            raise NotFound("Member not found")
        return member

    async def _project_owner_count(self, project_id: int) -> int:
        result = await self.db.execute(
            select(func.count(ProjectMember.id)).where(
                ProjectMember.project_id == project_id,
                ProjectMember.role == rbac.ProjectRole.PROJECT_OWNER.value,
            )
        )
        return result.scalar_one()

    async def change_project_member_role(
        self, actor: ProjectContext, actor_user_id: int, user_id: int, role: str
    ) -> ProjectMember:
        member = await self._project_member(actor.project_id, user_id)
        if not (
            rbac.can_manage_project_role(actor.role, member.role)
            and rbac.can_manage_project_role(actor.role, role)
        ):
            raise AccessDenied("You cannot change this member's role.")
        if (
            member.role == rbac.ProjectRole.PROJECT_OWNER.value
            and role != rbac.ProjectRole.PROJECT_OWNER.value
            and await self._project_owner_count(actor.project_id) <= 1
        ):
            raise Conflict("A project must keep at least one owner.")

        previous = member.role
        member.role = role
        await self.activity.record(
            activity.UPDATE_PROJECT_MEMBER_ROLE,
            user_id=actor_user_id,
            company_id=actor.company_id,
            metadata={
                "project_id": actor.project_id,
                "member_id": user_id,
                "from": previous,
                "to": role,
            },
        )
        await self.db.commit()
        return member

    async def remove_project_member(
        self, actor: ProjectContext, actor_user_id: int, user_id: int
    ) -> None:
        member = await self._project_member(actor.project_id, user_id)
        if not rbac.can_manage_project_role(actor.role, member.role):
            raise AccessDenied("You cannot remove this member.")
        if (
            member.role == rbac.ProjectRole.PROJECT_OWNER.value
            and await self._project_owner_count(actor.project_id) <= 1
        ):
            raise Conflict("A project must keep at least one owner.")

        await self.db.delete(member)
        await self.activity.record(
            activity.REMOVE_PROJECT_MEMBER,
            user_id=actor_user_id,
            company_id=actor.company_id,
            metadata={"project_id": actor.project_id, "member_id": user_id},
        )
        await self.db.commit()

    # ─── Project invitations ────────────────────────────

    async def invite_project_member(
        self, actor: ProjectContext, actor_user_id: int, email: str, role: str
    ) -> ProjectInvitation:
        if not rbac.can_manage_project_role(actor.role, role):
            raise AccessDenied(f"You cannot invite members as '{role}'.")

        invitation = ProjectInvitation(
            project_id=actor.project_id,
            email=email.strip().lower(),
            role=role,
            invited_by=actor_user_id,
            status="pending",
            token=generate_invitation_token(),
            expires_at=_invitation_expiry(),
        )
        self.db.add(invitation)
        await self.activity.record(
            activity.INVITE_PROJECT_MEMBER,
            user_id=actor_user_id,
            company_id=actor.company_id,
            metadata={"project_id": actor.project_id, "email": invitation.email, "role": role},
        )
        await self.db.commit()
        logger.info("project.member_invited", project_id=actor.project_id, role=role)
        return invitation

"""Auth service: sign-up, sign-in, password change, invitation acceptance.

Routes turn the returned UserContext into a session cookie; this layer
only touches the database. Every method commits its own transaction.

Invitations are checked before anything is written, so a bad invite
token never leaves a half-created account behind. Accepting flips
status pending → accepted with a conditional UPDATE, so two concurrent
acceptances cannot both succeed.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tcp_platform.auth.context import (
    ContextResolver,
    UserContext,
    company_context,
    project_context,
)
from tcp_platform.auth.password import dummy_verify, hash_password, verify_password
from tcp_platform.auth.rbac import CompanyRole
from tcp_platform.db.models import (
    Company,
    CompanyInvitation,
    CompanyMember,
    Project,
    ProjectInvitation,
    ProjectMember,
    User,
)
from tcp_platform.errors import (
    AccessDenied,
    AlreadyUsed,
    Conflict,
    Expired,
    InvalidCredentials,
    MalformedInput,
    NotFound,
)
from tcp_platform.events import types as activity
from tcp_platform.events.store import ActivityStore
from tcp_platform.services.slugs import ensure_unique_slug, generate_slug

logger = structlog.get_logger()

SIGN_IN_FAILED = "Invalid email or password. Please try again."
INVALID_INVITATION = "Invalid or expired invitation."


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass
class InvitationMatch:
    """A looked-up invitation with the company (and project) it grants."""

    invitation: Union[CompanyInvitation, ProjectInvitation]
    company: Company
    project: Optional[Project] = None

    @property
    def is_project(self) -> bool:
        return self.project is not None


class AuthService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.activity = ActivityStore(db)
        self.resolver = ContextResolver(db)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(
                func.lower(User.email) == normalize_email(email),
                User.deleted_at.is_(None),
            )
        )
        return result.scalars().first()

    # ─── Sign-up ────────────────────────────────────────

    async def sign_up(
        self,
        email: str,
        password: str,
        company_name: Optional[str] = None,
        invite_token: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> UserContext:
        """Create an account, either in a new company or via an invitation."""
        email = normalize_email(email)
        if await self.get_user_by_email(email):
            raise Conflict("An account with this email already exists.")

        match = None
        if invite_token:
            match = await self.find_invitation(invite_token)
            self._check_invitation(match, email)

        user = User(email=email, password_hash=hash_password(password))
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError:
            # Lost a race with a concurrent sign-up for the same email.
            await self.db.rollback()
            raise Conflict("An account with this email already exists.")

        if match:
            context = await self._apply_invitation(user, match)
        else:
            context = await self._create_owned_company(user, company_name, ip_address)

        await self.activity.record(
            activity.SIGN_UP,
            user_id=user.id,
            company_id=context.company.company_id,
            ip_address=ip_address,
        )
        await self.db.commit()
        logger.info(
            "auth.sign_up",
            user_id=user.id,
            company_id=context.company.company_id,
            via_invitation=match is not None,
        )
        return context

    async def _create_owned_company(
        self, user: User, company_name: Optional[str], ip_address: Optional[str]
    ) -> UserContext:
        name = company_name or f"{user.email.split('@')[0]}'s Company"
        slug = await ensure_unique_slug(self.db, Company, generate_slug(name))
        company = Company(name=name, slug=slug)
        self.db.add(company)
        await self.db.flush()

        member = CompanyMember(
            company_id=company.id, user_id=user.id, role=CompanyRole.OWNER.value
        )
        self.db.add(member)
        await self.db.flush()

        await self.activity.record(
            activity.CREATE_COMPANY,
            user_id=user.id,
            company_id=company.id,
            metadata={"slug": slug},
            ip_address=ip_address,
        )
        return UserContext(user=user, company=company_context(company, member))

    # ─── Sign-in ────────────────────────────────────────

    async def sign_in(
        self,
        email: str,
        password: str,
        company_slug: Optional[str] = None,
        project_slug: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> UserContext:
        """Check credentials and pick the company/project to scope to.

        Unknown email and wrong password fail identically.
        """
        user = await self.get_user_by_email(email)
        if user is None:
            dummy_verify(password)
            raise InvalidCredentials(SIGN_IN_FAILED)
        if not verify_password(password, user.password_hash):
            raise InvalidCredentials(SIGN_IN_FAILED)

        companies = await self.resolver.companies_for_user(user.id)
        if not companies:
            raise AccessDenied("User is not associated with any company.")

        selected = companies[0]
        if company_slug:
            for company, member in companies:
                if company.slug == company_slug:
                    selected = (company, member)
                    break

        context = UserContext(user=user, company=company_context(*selected))

        if project_slug:
            projects = await self.resolver.projects_for_user(
                user.id, company_id=context.company.company_id
            )
            for project, member in projects:
                if project.slug == project_slug:
                    context.project = project_context(project, member)
                    break

        await self.activity.record(
            activity.SIGN_IN,
            user_id=user.id,
            company_id=context.company.company_id,
            ip_address=ip_address,
        )
        await self.db.commit()
        logger.info("auth.sign_in", user_id=user.id, company_id=context.company.company_id)
        return context

    async def record_sign_out(self, user_id: int, company_id: Optional[int]) -> None:
        await self.activity.record(
            activity.SIGN_OUT, user_id=user_id, company_id=company_id
        )
        await self.db.commit()

    async def record_switch(self, context: UserContext) -> None:
        """Log a scope change. A context with a project counts as a project switch."""
        if context.project is not None:
            action = activity.SWITCH_PROJECT
            metadata = {"project_id": context.project.project_id}
        else:
            action = activity.SWITCH_COMPANY
            metadata = {}
        await self.activity.record(
            action,
            user_id=context.user.id,
            company_id=context.company.company_id,
            metadata=metadata,
        )
        await self.db.commit()

    # ─── Password ───────────────────────────────────────

    async def update_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
        confirm_password: str,
    ) -> None:
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentials("Current password is incorrect.")
        if current_password == new_password:
            raise MalformedInput(
                "New password must be different from the current password."
            )
        if confirm_password != new_password:
            raise MalformedInput(
                "New password and confirmation password do not match."
            )

        user.password_hash = hash_password(new_password)
        await self.activity.record(activity.UPDATE_PASSWORD, user_id=user.id)
        await self.db.commit()
        logger.info("auth.password_updated", user_id=user.id)

    # ─── Invitations ────────────────────────────────────

    async def find_invitation(self, token: str) -> InvitationMatch:
        """Look up a company or project invitation by token, any status."""
        result = await self.db.execute(
            select(CompanyInvitation, Company)
            .join(Company, Company.id == CompanyInvitation.company_id)
            .where(CompanyInvitation.token == token)
        )
        row = result.first()
        if row:
            return InvitationMatch(invitation=row[0], company=row[1])

        result = await self.db.execute(
            select(ProjectInvitation, Project, Company)
            .join(Project, Project.id == ProjectInvitation.project_id)
            .join(Company, Company.id == Project.company_id)
            .where(ProjectInvitation.token == token)
        )
        row = result.first()
        if row:
            return InvitationMatch(invitation=row[0], project=row[1], company=row[2])

        raise NotFound(INVALID_INVITATION)

    def _check_invitation(self, match: InvitationMatch, email: str) -> None:
        invitation = match.invitation
        if invitation.status == "accepted":
            raise AlreadyUsed("Invitation has already been accepted.")
        if invitation.status != "pending":
            raise NotFound(INVALID_INVITATION)
        if invitation.expires_at <= datetime.now(timezone.utc):
            raise Expired("Invitation has expired.")
        if normalize_email(invitation.email) != normalize_email(email):
            raise AccessDenied("Invitation was sent to a different email address.")

    async def _mark_accepted(self, match: InvitationMatch) -> None:
        model = type(match.invitation)
        result = await self.db.execute(
            update(model)
            .where(model.id == match.invitation.id, model.status == "pending")
            .values(status="accepted")
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise AlreadyUsed("Invitation has already been accepted.")
        match.invitation.status = "accepted"

    async def _apply_invitation(self, user: User, match: InvitationMatch) -> UserContext:
        await self._mark_accepted(match)
        company = match.company

        existing = await self.resolver.company_membership(user.id, company.id)
        if existing:
            company_member = existing[1]
            if not match.is_project:
                raise Conflict("You are already a member of this company.")
        else:
            # Project invites join the company as a plain member.
            role = (
                CompanyRole.MEMBER.value if match.is_project else match.invitation.role
            )
            company_member = CompanyMember(
                company_id=company.id, user_id=user.id, role=role
            )
            self.db.add(company_member)
            await self.db.flush()

        context = UserContext(user=user, company=company_context(company, company_member))

        if match.is_project:
            if await self.resolver.project_membership(user.id, match.project.id):
                raise Conflict("You are already a member of this project.")
            project_member = ProjectMember(
                project_id=match.project.id,
                user_id=user.id,
                role=match.invitation.role,
            )
            self.db.add(project_member)
            await self.db.flush()
            context.project = project_context(match.project, project_member)

        await self.activity.record(
            activity.ACCEPT_PROJECT_INVITATION
            if match.is_project
            else activity.ACCEPT_COMPANY_INVITATION,
            user_id=user.id,
            company_id=company.id,
            metadata={"invitation_id": match.invitation.id},
        )
        return context

    async def accept_invitation(self, user: User, token: str) -> UserContext:
        """An existing user accepts an invitation addressed to their email."""
        match = await self.find_invitation(token)
        self._check_invitation(match, user.email)
        context = await self._apply_invitation(user, match)
        await self.db.commit()
        logger.info(
            "auth.invitation_accepted",
            user_id=user.id,
            company_id=match.company.id,
            project_id=match.project.id if match.project else None,
        )
        return context

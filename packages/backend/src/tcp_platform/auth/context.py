"""Context resolver: turn a verified user session into a UserContext.

The session token only says which company/project the user picked. The
resolver re-reads the membership rows so that a removed member, or a
role changed since sign-in, is seen on the very next request:

- company claim with no membership row → company context omitted
- project claim with no membership row, or belonging to a different
  company than the resolved one → project context omitted

A missing context is "not authorized for that scope", never an
authentication failure. Only a missing user makes resolve() return None.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tcp_platform.auth import rbac
from tcp_platform.auth.session import build_user_session
from tcp_platform.db.models import Company, CompanyMember, Project, ProjectMember, User
from tcp_platform.errors import AccessDenied
from tcp_platform.schemas.session import ScopeClaim, UserSessionData


@dataclass
class CompanyContext:
    company_id: int
    slug: str
    name: str
    role: str

    def claim(self) -> ScopeClaim:
        return ScopeClaim(id=self.company_id, slug=self.slug, role=self.role)


@dataclass
class ProjectContext:
    project_id: int
    company_id: int
    slug: str
    name: str
    role: str

    def claim(self) -> ScopeClaim:
        return ScopeClaim(id=self.project_id, slug=self.slug, role=self.role)


@dataclass
class UserContext:
    """Authenticated user plus the scopes they currently act in."""

    user: User
    company: Optional[CompanyContext] = None
    project: Optional[ProjectContext] = None

    def can_company(self, permission: str) -> bool:
        return self.company is not None and rbac.has_company_permission(
            self.company.role, permission
        )

    def can_project(self, permission: str) -> bool:
        return self.project is not None and rbac.has_project_permission(
            self.project.role, permission
        )

    def to_session(self) -> UserSessionData:
        return build_user_session(
            self.user.id,
            self.user.email,
            self.company.claim() if self.company else None,
            self.project.claim() if self.project else None,
        )


def company_context(company: Company, member: CompanyMember) -> CompanyContext:
    return CompanyContext(
        company_id=company.id, slug=company.slug, name=company.name, role=member.role
    )


def project_context(project: Project, member: ProjectMember) -> ProjectContext:
    return ProjectContext(
        project_id=project.id,
        company_id=project.company_id,
        slug=project.slug,
        name=project.name,
        role=member.role,
    )


class ContextResolver:
    """Loads memberships for a session. One instance per request."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Lookups ────────────────────────────────────────

    async def get_user(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id, User.deleted_at.is_(None))
        )
        return result.scalars().first()

    async def company_membership(
        self, user_id: int, company_id: int
    ) -> Optional[tuple[Company, CompanyMember]]:
        result = await self.db.execute(
            select(Company, CompanyMember)
            .join(CompanyMember, CompanyMember.company_id == Company.id)
            .where(
                Company.id == company_id,
                Company.deleted_at.is_(None),
                CompanyMember.user_id == user_id,
            )
        )
        row = result.first()
        return (row[0], row[1]) if row else None

    async def project_membership(
        self, user_id: int, project_id: int
    ) -> Optional[tuple[Project, ProjectMember]]:
        result = await self.db.execute(
            select(Project, ProjectMember)
            .join(ProjectMember, ProjectMember.project_id == Project.id)
            .where(
                Project.id == project_id,
                Project.deleted_at.is_(None),
                ProjectMember.user_id == user_id,
            )
        )
        row = result.first()
        return (row[0], row[1]) if row else None

    async def companies_for_user(self, user_id: int) -> list[tuple[Company, CompanyMember]]:
        result = await self.db.execute(
            select(Company, CompanyMember)
            .join(CompanyMember, CompanyMember.company_id == Company.id)
            .where(CompanyMember.user_id == user_id, Company.deleted_at.is_(None))
            .order_by(Company.name, Company.id)
        )
        return [(c, m) for c, m in result.all()]

    async def projects_for_user(
        self, user_id: int, company_id: Optional[int] = None
    ) -> list[tuple[Project, ProjectMember]]:
        query = (
            select(Project, ProjectMember)
            .join(ProjectMember, ProjectMember.project_id == Project.id)
            .where(ProjectMember.user_id == user_id, Project.deleted_at.is_(None))
            .order_by(Project.name, Project.id)
        )
        if company_id is not None:
            query = query.where(Project.company_id == company_id)
        result = await self.db.execute(query)
        return [(p, m) for p, m in result.all()]

    async def memberships(self, user_id: int) -> dict:
        """Every company and project the user belongs to, with roles."""
        companies = await self.companies_for_user(user_id)
        projects = await self.projects_for_user(user_id)
        return {
            "companies": [
                {"id": c.id, "slug": c.slug, "name": c.name, "role": m.role}
                for c, m in companies
            ],
            "projects": [
                {
                    "id": p.id,
                    "company_id": p.company_id,
                    "slug": p.slug,
                    "name": p.name,
                    "role": m.role,
                }
                for p, m in projects
            ],
        }

    # ─── Resolution ─────────────────────────────────────

    async def resolve(self, session: Optional[UserSessionData]) -> Optional[UserContext]:
        if session is None:
            return None

        user = await self.get_user(session.user.id)
        if user is None:
            return None

        context = UserContext(user=user)

        if session.company:
            found = await self.company_membership(user.id, session.company.id)
            if found:
                context.company = company_context(*found)

        if session.project and context.company:
            found = await self.project_membership(user.id, session.project.id)
            if found and found[0].company_id == context.company.company_id:
                context.project = project_context(*found)

        return context

    # ─── Switching ──────────────────────────────────────

    async def switch_company(self, user: User, company_id: int) -> UserContext:
        """Scope the user to another company. Always drops the project."""
        found = await self.company_membership(user.id, company_id)
        if not found:
            raise AccessDenied("You do not have access to this company.")
        return UserContext(user=user, company=company_context(*found), project=None)

    async def switch_project(self, user: User, project_id: int) -> UserContext:
        """Scope the user to a project and adopt its owning company."""
        project_found = await self.project_membership(user.id, project_id)
        if not project_found:
            raise AccessDenied("You do not have access to this project.")
        project, project_member = project_found

        company_found = await self.company_membership(user.id, project.company_id)
        if not company_found:
            raise AccessDenied("You do not have access to this project.")

        return UserContext(
            user=user,
            company=company_context(*company_found),
            project=project_context(project, project_member),
        )

"""SQLAlchemy ORM models: the Credential Store schema.

Declarative mapping in SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Alembic revisions in db/migrations are written against these classes.

Key points:
- Integer primary keys; user/company/project/agent ids are numeric and
  end up inside signed session tokens.
- One role per scope: (company_id, user_id) and (project_id, user_id)
  are unique.
- Soft delete via deleted_at on users, companies, projects and agents.
- JSON columns become JSONB on PostgreSQL.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always comes back in UTC.

    SQLite drops tzinfo on the way in; values are normalised to UTC
    before binding and re-tagged as UTC when read.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


JSONType = JSON().with_variant(JSONB(), "postgresql")


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )


def _updated_at() -> Mapped[datetime]:
    return mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )


# ══════════════════════════════════════════════════════════════
# Tenancy: users, companies, projects, memberships
# ══════════════════════════════════════════════════════════════


class User(Base):
    """A human user. Never hard-deleted."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)


class Company(Base):
    """Tenant root. Owns projects, members and billing state.

    The stripe_* / plan columns are written by the billing integration,
    which lives outside this service.
    """

    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Billing
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(
        Text, unique=True, nullable=True
    )
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(
        Text, unique=True, nullable=True
    )
    stripe_product_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    plan_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    subscription_status: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True
    )


class Project(Base):
    """Unit of agent ownership inside a company."""

    __tablename__ = "projects"
    __table_args__ = (
        UniqueConstraint("company_id", "slug", name="uq_projects_company_slug"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("companies.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)


class CompanyMember(Base):
    """Company membership with a company role."""

    __tablename__ = "company_members"
    __table_args__ = (
        UniqueConstraint("company_id", "user_id", name="uq_company_members"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("companies.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    role: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # owner, billing_admin, admin, member
    joined_at: Mapped[datetime] = _created_at()


class ProjectMember(Base):
    """Project membership with a project role."""

    __tablename__ = "project_members"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_members"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    role: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # project_owner, project_admin, developer, analyst
    joined_at: Mapped[datetime] = _created_at()


# ══════════════════════════════════════════════════════════════
# Invitations
# ══════════════════════════════════════════════════════════════


class CompanyInvitation(Base):
    """Pending invite into a company. pending → accepted | revoked."""

    __tablename__ = "company_invitations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("companies.id"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    invited_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    invited_at: Mapped[datetime] = _created_at()
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )
    token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class ProjectInvitation(Base):
    """Pending invite into a project (joins the company as member)."""

    __tablename__ = "project_invitations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    invited_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    invited_at: Mapped[datetime] = _created_at()
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )
    token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# ══════════════════════════════════════════════════════════════
# Agents
# ══════════════════════════════════════════════════════════════


class Agent(Base):
    """A remote transfer agent registered to a project.

    Lifecycle: created pending (is_active=False, registration_token set)
    → registered (token cleared, secret_hash set, is_active=True)
    → optionally rotated → deactivated (is_active=False, deleted_at set).

    secret_hash doubles as the agent's token signing key, so rotating the
    secret invalidates every outstanding agent token.
    """

    __tablename__ = "agents"
    __table_args__ = (
        UniqueConstraint("project_id", "slug", name="uq_agents_project_slug"),
        Index("idx_agents_agent_id", "agent_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Authentication
    agent_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    secret_hash: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    registration_token: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True
    )
    registration_token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Metadata
    capabilities: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    last_seen_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)


class AgentActivityLog(Base):
    """Append-only audit trail for one agent."""

    __tablename__ = "agent_activity_logs"
    __table_args__ = (
        Index("idx_agent_activity_agent", "agent_id", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agent_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("agents.id"), nullable=False
    )
    action: Mapped[str] = mapped_column(Text, nullable=False)
    meta: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )
    # Python attr is "meta" because "metadata" is reserved by SQLAlchemy.
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = _created_at()


class AgentTelemetry(Base):
    """One telemetry sample reported by an agent."""

    __tablename__ = "agent_telemetry"
    __table_args__ = (
        Index("idx_agent_telemetry_agent", "agent_id", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agent_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("agents.id"), nullable=False
    )
    timestamp: Mapped[datetime] = _created_at()
    metrics: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    meta: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )


# ══════════════════════════════════════════════════════════════
# User activity
# ══════════════════════════════════════════════════════════════


class ActivityLog(Base):
    """Append-only audit trail for user actions."""

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("idx_activity_company", "company_id", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    company_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("companies.id"), nullable=True
    )
    action: Mapped[str] = mapped_column(Text, nullable=False)
    meta: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    timestamp: Mapped[datetime] = _created_at()

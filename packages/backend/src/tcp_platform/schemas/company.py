"""Pydantic schemas for companies, projects, members and invitations."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from tcp_platform.auth.rbac import CompanyRole, ProjectRole

SLUG_PATTERN = r"^[a-z0-9-]+$"


# ─── Companies ──────────────────────────────────────────

class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=1, max_length=50, pattern=SLUG_PATTERN)


class CompanyRead(BaseModel):
    id: int
    name: str
    slug: str
    plan_name: Optional[str] = None
    subscription_status: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CompanyWithRole(CompanyRead):
    role: str


# ─── Projects ───────────────────────────────────────────

class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=1, max_length=50, pattern=SLUG_PATTERN)
    description: Optional[str] = Field(None, max_length=2000)


class ProjectRead(BaseModel):
    id: int
    company_id: int
    name: str
    slug: str
    description: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ─── Members ────────────────────────────────────────────

class MemberRead(BaseModel):
    user_id: int
    email: str
    name: Optional[str] = None
    role: str
    joined_at: datetime


class CompanyRoleUpdate(BaseModel):
    role: CompanyRole


class ProjectRoleUpdate(BaseModel):
    role: ProjectRole


# ─── Invitations ────────────────────────────────────────

class CompanyInvitationCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    role: CompanyRole = CompanyRole.MEMBER


class ProjectInvitationCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    role: ProjectRole = ProjectRole.DEVELOPER


class InvitationRead(BaseModel):
    """Invitation as returned to its creator. The token is the link secret."""
    id: int
    email: str
    role: str
    status: str
    token: str
    invited_at: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}


# ─── Activity ───────────────────────────────────────────

class ActivityLogRead(BaseModel):
    id: int
    user_id: Optional[int] = None
    action: str
    metadata: dict = Field(default_factory=dict, validation_alias="meta")
    ip_address: Optional[str] = None
    timestamp: datetime

    model_config = {"from_attributes": True}

"""Pydantic schemas for sign-up/sign-in, the current user and scope switching."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _lower(value: str) -> str:
    return value.strip().lower()


# ─── Pages ──────────────────────────────────────────────

class SignUpForm(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=100)
    company_name: Optional[str] = Field(None, min_length=1, max_length=255)
    invite_token: Optional[str] = None
    redirect: Optional[str] = None

    @field_validator("email")
    @classmethod
    def valid_email(cls, value: str) -> str:
        value = _lower(value)
        if "@" not in value:
            raise ValueError("Invalid email address")
        return value


class SignInForm(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=100)
    company_slug: Optional[str] = None
    project_slug: Optional[str] = None
    redirect: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _lower(value)


# ─── Current user ───────────────────────────────────────

class UserRead(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CompanyScope(BaseModel):
    id: int
    slug: str
    name: str
    role: str
    permissions: list[str]


class ProjectScope(CompanyScope):
    company_id: int


class MeResponse(BaseModel):
    user: UserRead
    company: Optional[CompanyScope] = None
    project: Optional[ProjectScope] = None


class PasswordUpdate(BaseModel):
    current_password: str = Field(..., min_length=8, max_length=100)
    new_password: str = Field(..., min_length=8, max_length=100)
    confirm_password: str = Field(..., min_length=8, max_length=100)


class SwitchCompany(BaseModel):
    company_id: int


class SwitchProject(BaseModel):
    project_id: int


class AcceptInvitation(BaseModel):
    token: str = Field(..., min_length=1)

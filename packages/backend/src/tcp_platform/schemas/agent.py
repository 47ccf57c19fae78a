"""Pydantic schemas for agents: provisioning, credentials, telemetry.

Secrets and registration tokens appear only in the *Created / *Issued
responses, i.e. exactly once per issuance.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

AGENT_ID_PATTERN = r"^[A-Za-z0-9_.-]+$"


# ─── User side ──────────────────────────────────────────

class AgentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    agent_id: Optional[str] = Field(
        None, min_length=3, max_length=255, pattern=AGENT_ID_PATTERN
    )
    description: Optional[str] = Field(None, max_length=2000)
    capabilities: list[str] = Field(default_factory=list)


class AgentRead(BaseModel):
    id: int
    project_id: int
    name: str
    slug: str
    agent_id: str
    description: Optional[str] = None
    is_active: bool
    capabilities: list[str] = []
    last_seen_at: Optional[datetime] = None
    registration_token_expires_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RegistrationTokenIssued(BaseModel):
    agent: AgentRead
    registration_token: str
    expires_at: datetime


class SecretRotated(BaseModel):
    agent_id: str
    secret: str


class ActivityRead(BaseModel):
    id: int
    action: str
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="meta")
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime

    model_config = {"from_attributes": True}


class TelemetryRead(BaseModel):
    id: int
    timestamp: datetime
    metrics: dict[str, Any]
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="meta")

    model_config = {"from_attributes": True}


# ─── Agent side ─────────────────────────────────────────

class RegisterRequest(BaseModel):
    agent_name: str = Field(..., min_length=1, max_length=255)
    capabilities: Optional[list[str]] = None


class AgentCredentials(BaseModel):
    agent_id: str
    secret: str
    token: str


class RegisterResponse(BaseModel):
    agent: AgentRead
    credentials: AgentCredentials


class AuthenticateRequest(BaseModel):
    agent_id: str = Field(..., min_length=1, max_length=255)


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int


class AgentMe(BaseModel):
    agent: AgentRead
    project_slug: Optional[str] = None
    expires: datetime


class TelemetrySubmit(BaseModel):
    metrics: dict[str, Any]
    metadata: Optional[dict[str, Any]] = None


class TelemetryAccepted(BaseModel):
    accepted: bool = True
    telemetry_id: int
    next_submission_after: datetime
    frequency_ms: int

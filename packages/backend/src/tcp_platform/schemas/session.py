"""Pydantic schemas for signed session payloads.

A token carries exactly one of two shapes, told apart by `type`:
- UserSessionData: a signed-in user plus optional company/project scope
- AgentSessionData: an authenticated agent

Agent claims keep the camelCase keys (agentId, projectId) that agents
already parse; Python code uses the snake_case attribute names.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class SessionUser(BaseModel):
    id: int
    email: str


class ScopeClaim(BaseModel):
    """A company or project the session is currently scoped to."""
    id: int
    slug: str
    role: str


class UserSessionData(BaseModel):
    type: Literal["user"] = "user"
    user: SessionUser
    company: Optional[ScopeClaim] = None
    project: Optional[ScopeClaim] = None
    expires: datetime


class SessionAgent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    agent_id: str = Field(alias="agentId")
    project_id: int = Field(alias="projectId")


class AgentSessionData(BaseModel):
    type: Literal["agent"] = "agent"
    agent: SessionAgent
    expires: datetime


SessionData = Annotated[
    Union[UserSessionData, AgentSessionData], Field(discriminator="type")
]

session_adapter: TypeAdapter[SessionData] = TypeAdapter(SessionData)

"""Agent provisioning routes (user side): agents of the current project.

- POST   /project/agents                          → pending agent + registration token
- GET    /project/agents
- POST   /project/agents/{id}/registration-token  → fresh registration token
- POST   /project/agents/{id}/rotate-secret       → new secret, old tokens die
- DELETE /project/agents/{id}                     → soft delete
- GET    /project/agents/{id}/activity
- GET    /project/agents/{id}/telemetry

Registration tokens and secrets are shown once, in the response that
issues them.
"""

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from tcp_platform.auth.context import UserContext
from tcp_platform.auth.dependencies import require_project_permission
from tcp_platform.db.engine import get_db
from tcp_platform.schemas.agent import (
    ActivityRead,
    AgentCreate,
    AgentRead,
    RegistrationTokenIssued,
    SecretRotated,
    TelemetryRead,
)
from tcp_platform.services.agent_service import AgentService

router = APIRouter(prefix="/project/agents")


def _svc(db: AsyncSession = Depends(get_db)) -> AgentService:
    return AgentService(db)


@router.post("", response_model=RegistrationTokenIssued, status_code=201)
async def create_agent(
    body: AgentCreate,
    context: UserContext = Depends(require_project_permission("project:agents:create")),
    svc: AgentService = Depends(_svc),
):
    agent, token = await svc.create_agent(
        context.project.project_id,
        body.name,
        created_by=context.user.id,
        agent_id=body.agent_id,
        description=body.description,
        capabilities=body.capabilities,
    )
    return RegistrationTokenIssued(
        agent=AgentRead.model_validate(agent),
        registration_token=token,
        expires_at=agent.registration_token_expires_at,
    )


@router.get("", response_model=list[AgentRead])
async def list_agents(
    context: UserContext = Depends(require_project_permission("project:agents:read")),
    svc: AgentService = Depends(_svc),
):
    return await svc.list_agents(context.project.project_id)


@router.post("/{agent_pk}/registration-token", response_model=RegistrationTokenIssued)
async def issue_registration_token(
    agent_pk: int,
    context: UserContext = Depends(require_project_permission("project:agents:update")),
    svc: AgentService = Depends(_svc),
):
    agent = await svc.get_agent(context.project.project_id, agent_pk)
    token = await svc.issue_registration_token(agent, issued_by=context.user.id)
    return RegistrationTokenIssued(
        agent=AgentRead.model_validate(agent),
        registration_token=token,
        expires_at=agent.registration_token_expires_at,
    )


@router.post("/{agent_pk}/rotate-secret", response_model=SecretRotated)
async def rotate_secret(
    agent_pk: int,
    context: UserContext = Depends(require_project_permission("project:agents:update")),
    svc: AgentService = Depends(_svc),
):
    agent = await svc.get_agent(context.project.project_id, agent_pk)
    secret = await svc.rotate_secret(agent, rotated_by=context.user.id)
    return SecretRotated(agent_id=agent.agent_id, secret=secret)


@router.delete("/{agent_pk}", status_code=204)
async def delete_agent(
    agent_pk: int,
    context: UserContext = Depends(require_project_permission("project:agents:delete")),
    svc: AgentService = Depends(_svc),
):
    agent = await svc.get_agent(context.project.project_id, agent_pk)
    await svc.deactivate(agent, deleted_by=context.user.id)
    return Response(status_code=204)


@router.get("/{agent_pk}/activity", response_model=list[ActivityRead])
async def agent_activity(
    agent_pk: int,
    limit: int = Query(100, ge=1, le=1000),
    context: UserContext = Depends(require_project_permission("project:agents:read")),
    svc: AgentService = Depends(_svc),
):
    agent = await svc.get_agent(context.project.project_id, agent_pk)
    return await svc.list_activity(agent.id, limit=limit)


@router.get("/{agent_pk}/telemetry", response_model=list[TelemetryRead])
async def agent_telemetry(
    agent_pk: int,
    duration: int = Query(3600, ge=1, le=30 * 24 * 3600, description="Seconds back from now"),
    limit: int = Query(1000, ge=1, le=1000),
    context: UserContext = Depends(require_project_permission("project:data:read")),
    svc: AgentService = Depends(_svc),
):
    agent = await svc.get_agent(context.project.project_id, agent_pk)
    return await svc.list_telemetry(agent.id, duration_seconds=duration, limit=limit)

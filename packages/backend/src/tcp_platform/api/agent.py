"""Agent-facing API: what a remote agent calls with its own credentials.

Every route takes `Authorization: Bearer <credential>`; what the
credential is depends on the step:

- POST /agent/register      → registration token
- POST /agent/authenticate  → agent secret
- POST /agent/refresh       → current agent token
- GET  /agent/me            → agent token
- POST /agent/telemetry     → agent token
"""

from datetime import timedelta

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tcp_platform.api.pages import client_ip
from tcp_platform.auth.dependencies import get_agent_context, require_bearer
from tcp_platform.config import settings
from tcp_platform.db.engine import get_db
from tcp_platform.schemas.agent import (
    AgentCredentials,
    AgentMe,
    AgentRead,
    AuthenticateRequest,
    RegisterRequest,
    RegisterResponse,
    TelemetryAccepted,
    TelemetrySubmit,
    TokenResponse,
)
from tcp_platform.services.agent_service import (
    TELEMETRY_FREQUENCY_MS,
    AgentContext,
    AgentService,
)

router = APIRouter(prefix="/agent")


def _svc(db: AsyncSession = Depends(get_db)) -> AgentService:
    return AgentService(db)


def _token_response(token: str) -> TokenResponse:
    return TokenResponse(token=token, expires_in=settings.agent_token_hours * 3600)


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    registration_token: str = Depends(require_bearer),
    svc: AgentService = Depends(_svc),
):
    """Exchange a registration token. The secret is never shown again."""
    issued = await svc.register(
        registration_token,
        body.agent_name,
        capabilities=body.capabilities,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return RegisterResponse(
        agent=AgentRead.model_validate(issued.agent),
        credentials=AgentCredentials(
            agent_id=issued.agent.agent_id,
            secret=issued.secret,
            token=issued.token,
        ),
    )


@router.post("/authenticate", response_model=TokenResponse)
async def authenticate(
    body: AuthenticateRequest,
    request: Request,
    secret: str = Depends(require_bearer),
    svc: AgentService = Depends(_svc),
):
    _, token = await svc.authenticate(
        body.agent_id,
        secret,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _token_response(token)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    context: AgentContext = Depends(get_agent_context),
    svc: AgentService = Depends(_svc),
):
    return _token_response(await svc.refresh_token(context))


@router.get("/me", response_model=AgentMe)
async def me(
    context: AgentContext = Depends(get_agent_context),
    svc: AgentService = Depends(_svc),
):
    return AgentMe(
        agent=AgentRead.model_validate(context.agent),
        project_slug=await svc.project_slug(context.agent.project_id),
        expires=context.session.expires,
    )


@router.post("/telemetry", response_model=TelemetryAccepted, status_code=201)
async def submit_telemetry(
    body: TelemetrySubmit,
    context: AgentContext = Depends(get_agent_context),
    svc: AgentService = Depends(_svc),
):
    sample = await svc.record_telemetry(context.agent, body.metrics, body.metadata)
    return TelemetryAccepted(
        telemetry_id=sample.id,
        next_submission_after=sample.timestamp + timedelta(milliseconds=TELEMETRY_FREQUENCY_MS),
        frequency_ms=TELEMETRY_FREQUENCY_MS,
    )

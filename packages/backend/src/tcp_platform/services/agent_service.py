"""Agent service: provisioning, registration, authentication, telemetry.

Agent credentials, in the order an agent meets them:
1. registration token: one-time, short-lived, created by a project admin
2. secret: returned exactly once when the registration token is exchanged;
   only its bcrypt hash is stored
3. agent token: 1-day bearer token signed with the agent's own key

The agent's signing key is its stored secret hash. Rotating the secret
therefore revokes every token issued before the rotation, and a key from
one agent can never verify another agent's token.

Registration consumes the token with a conditional UPDATE (token must
still match), so a token is exchanged at most once even under
concurrent requests.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tcp_platform.auth.password import (
    dummy_verify,
    generate_agent_secret,
    generate_registration_token,
    hash_agent_secret,
    verify_agent_secret,
)
from tcp_platform.auth.session import create_agent_token, verify_agent_token
from tcp_platform.auth.tokens import MalformedToken, peek_claims
from tcp_platform.config import settings
from tcp_platform.db.models import Agent, AgentActivityLog, AgentTelemetry, Project
from tcp_platform.errors import Conflict, Expired, InvalidCredentials, NotFound
from tcp_platform.events import types as activity
from tcp_platform.events.store import ActivityStore
from tcp_platform.schemas.session import AgentSessionData
from tcp_platform.services.slugs import ensure_unique_slug, generate_slug

logger = structlog.get_logger()

TELEMETRY_FREQUENCY_MS = 1000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AgentContext:
    """An agent whose bearer token verified against its own key."""

    agent: Agent
    session: AgentSessionData


@dataclass
class IssuedCredentials:
    agent: Agent
    secret: str
    token: str


class AgentService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.activity = ActivityStore(db)

    # ─── Lookups ────────────────────────────────────────

    async def list_agents(self, project_id: int) -> list[Agent]:
        result = await self.db.execute(
            select(Agent)
            .where(Agent.project_id == project_id, Agent.deleted_at.is_(None))
            .order_by(Agent.name, Agent.id)
        )
        return list(result.scalars().all())

    async def get_agent(self, project_id: int, agent_pk: int) -> Agent:
        """Agent by primary key, scoped to a project (404 otherwise)."""
        agent = await self.db.get(Agent, agent_pk)
        if not agent or agent.project_id != project_id or agent.deleted_at is not None:
            raise NotFound("Agent not found")
        return agent

    async def _active_agent(self, agent_id: str) -> Optional[Agent]:
        result = await self.db.execute(
            select(Agent).where(
                Agent.agent_id == agent_id,
                Agent.is_active.is_(True),
                Agent.deleted_at.is_(None),
            )
        )
        return result.scalars().first()

    # ─── Provisioning (user side) ───────────────────────

    async def create_agent(
        self,
        project_id: int,
        name: str,
        *,
        created_by: int,
        agent_id: Optional[str] = None,
        description: Optional[str] = None,
        capabilities: Optional[list[str]] = None,
    ) -> tuple[Agent, str]:
        """Create a pending agent. Returns it with its registration token."""
        agent_id = agent_id or f"agent-{secrets.token_hex(8)}"
        existing = await self.db.execute(select(Agent.id).where(Agent.agent_id == agent_id))
        if existing.first():
            raise Conflict(f"Agent id '{agent_id}' is already registered.")

        slug = await ensure_unique_slug(
            self.db, Agent, generate_slug(name), Agent.project_id == project_id
        )
        token = generate_registration_token()
        agent = Agent(
            project_id=project_id,
            name=name,
            slug=slug,
            description=description,
            agent_id=agent_id,
            registration_token=token,
            registration_token_expires_at=self._registration_expiry(),
            is_active=False,
            capabilities=capabilities or [],
        )
        self.db.add(agent)
        await self.db.flush()

        await self.activity.record_agent(
            agent.id, activity.CREATE_AGENT, metadata={"created_by": created_by}
        )
        await self.db.commit()
        logger.info("agent.created", agent_pk=agent.id, project_id=project_id)
        return agent, token

    def _registration_expiry(self) -> datetime:
        return utcnow() + timedelta(minutes=settings.registration_token_minutes)

    async def issue_registration_token(self, agent: Agent, issued_by: int) -> str:
        """Replace any outstanding registration token with a fresh one."""
        token = generate_registration_token()
        agent.registration_token = token
        agent.registration_token_expires_at = self._registration_expiry()
        await self.activity.record_agent(
            agent.id, activity.ISSUE_REGISTRATION_TOKEN, metadata={"issued_by": issued_by}
        )
        await self.db.commit()
        return token

    async def rotate_secret(self, agent: Agent, rotated_by: int) -> str:
        """New secret for a registered agent. Old tokens stop verifying."""
        if agent.secret_hash is None:
            raise Conflict("Agent has not completed registration.")
        secret = generate_agent_secret()
        agent.secret_hash = hash_agent_secret(secret)
        await self.activity.record_agent(
            agent.id, activity.ROTATE_AGENT_SECRET, metadata={"rotated_by": rotated_by}
        )
        await self.db.commit()
        logger.info("agent.secret_rotated", agent_pk=agent.id)
        return secret

    async def deactivate(self, agent: Agent, deleted_by: int) -> None:
        """Soft delete: the agent can no longer register or authenticate."""
        agent.is_active = False
        agent.deleted_at = utcnow()
        agent.registration_token = None
        agent.registration_token_expires_at = None
        await self.activity.record_agent(
            agent.id, activity.DELETE_AGENT, metadata={"deleted_by": deleted_by}
        )
        await self.db.commit()
        logger.info("agent.deactivated", agent_pk=agent.id)

    # ─── Registration (agent side) ──────────────────────

    async def register(
        self,
        registration_token: str,
        agent_name: str,
        capabilities: Optional[list[str]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> IssuedCredentials:
        """Exchange a registration token for a secret and a first token."""
        result = await self.db.execute(
            select(Agent).where(
                Agent.registration_token == registration_token,
                Agent.deleted_at.is_(None),
            )
        )
        agent = result.scalars().first()
        if agent is None:
            raise InvalidCredentials("Invalid registration token")

        expires_at = agent.registration_token_expires_at
        if expires_at is not None and expires_at < utcnow():
            raise Expired("Registration token has expired")

        secret = generate_agent_secret()
        secret_hash = hash_agent_secret(secret)
        now = utcnow()
        values = {
            "name": agent_name,
            "secret_hash": secret_hash,
            "registration_token": None,
            "registration_token_expires_at": None,
            "is_active": True,
            "last_seen_at": now,
            "updated_at": now,
        }
        if capabilities is not None:
            values["capabilities"] = capabilities

        consumed = await self.db.execute(
            update(Agent)
            .where(
                Agent.id == agent.id,
                Agent.registration_token == registration_token,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if consumed.rowcount != 1:
            raise InvalidCredentials("Invalid registration token")
        for key, value in values.items():
            setattr(agent, key, value)

        await self.activity.record_agent(
            agent.id,
            activity.REGISTER_AGENT,
            metadata={"agent_name": agent_name},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self.db.commit()
        logger.info("agent.registered", agent_pk=agent.id, project_id=agent.project_id)

        token = create_agent_token(agent, agent.secret_hash)
        return IssuedCredentials(agent=agent, secret=secret, token=token)

    # ─── Authentication (agent side) ────────────────────

    async def authenticate(
        self,
        agent_id: str,
        secret: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> tuple[Agent, str]:
        """Check an agent's secret and issue a fresh token.

        Unknown agent and wrong secret are indistinguishable to the caller.
        """
        agent = await self._active_agent(agent_id)
        if agent is None:
            dummy_verify(secret)
            raise InvalidCredentials()

        if not verify_agent_secret(secret, agent.secret_hash):
            await self.activity.record_agent(
                agent.id,
                activity.AUTHENTICATION_FAILED,
                metadata={"reason": "Invalid secret"},
                ip_address=ip_address,
                user_agent=user_agent,
            )
            await self.db.commit()
            logger.warning("agent.authentication_failed", agent_pk=agent.id)
            raise InvalidCredentials()

        agent.last_seen_at = utcnow()
        await self.activity.record_agent(
            agent.id,
            activity.AGENT_AUTHENTICATED,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self.db.commit()
        return agent, create_agent_token(agent, agent.secret_hash)

    async def authenticate_bearer(self, token: Optional[str]) -> Optional[AgentContext]:
        """Resolve an agent bearer token, or None.

        The unverified claims only pick which agent's key to try; the
        token is then verified against that key and must name that agent.
        """
        if not token:
            return None
        try:
            claims = peek_claims(token)
        except MalformedToken:
            return None
        if claims.get("type") != "agent" or not isinstance(claims.get("agent"), dict):
            return None
        agent_id = claims["agent"].get("agentId")
        if not isinstance(agent_id, str):
            return None

        agent = await self._active_agent(agent_id)
        if agent is None:
            return None

        session = verify_agent_token(token, agent.secret_hash)
        if session is None or session.agent.id != agent.id:
            return None

        # Last writer wins; concurrent requests only race on a timestamp.
        agent.last_seen_at = utcnow()
        await self.db.commit()
        return AgentContext(agent=agent, session=session)

    async def refresh_token(self, context: AgentContext) -> str:
        """Explicit refresh: a still-valid token buys a new 1-day token."""
        await self.activity.record_agent(context.agent.id, activity.AGENT_TOKEN_REFRESHED)
        await self.db.commit()
        return create_agent_token(context.agent, context.agent.secret_hash)

    # ─── Telemetry ──────────────────────────────────────

    async def record_telemetry(
        self, agent: Agent, metrics: dict, metadata: Optional[dict] = None
    ) -> AgentTelemetry:
        sample = AgentTelemetry(agent_id=agent.id, metrics=metrics, meta=metadata or {})
        self.db.add(sample)
        agent.last_seen_at = utcnow()
        await self.db.commit()
        return sample

    async def list_telemetry(
        self, agent_pk: int, duration_seconds: int = 3600, limit: int = 1000
    ) -> list[AgentTelemetry]:
        since = utcnow() - timedelta(seconds=duration_seconds)
        result = await self.db.execute(
            select(AgentTelemetry)
            .where(AgentTelemetry.agent_id == agent_pk, AgentTelemetry.timestamp >= since)
            .order_by(AgentTelemetry.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_activity(self, agent_pk: int, limit: int = 100) -> list[AgentActivityLog]:
        return await self.activity.for_agent(agent_pk, limit=limit)

    async def project_slug(self, project_id: int) -> Optional[str]:
        project = await self.db.get(Project, project_id)
        return project.slug if project else None

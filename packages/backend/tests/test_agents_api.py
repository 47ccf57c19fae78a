"""Agent lifecycle: provisioning, registration, authentication, tokens, telemetry."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy import select, update

from conftest import bearer, create_agent, create_project, register_agent, sign_up
from tcp_platform.auth.session import create_agent_token
from tcp_platform.config import settings
from tcp_platform.db.models import Agent, AgentActivityLog
from tcp_platform.events import types as activity


async def _registered(client, name="edge-01", **extra):
    """Create an agent in the current project and register it."""
    issued = await create_agent(client, name, **extra)
    r = await register_agent(client, issued["registration_token"], name)
    assert r.status_code == 201, r.text
    return r.json()


@pytest_asyncio.fixture()
async def owner(client):
    await sign_up(client, "ops@agents.io", company_name="Agents Inc")
    await create_project(client, "Fleet")
    return client


# ═══════════════════════════════════════════════════════════
# Provisioning
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_create_agent_returns_registration_token(owner):
    issued = await create_agent(owner, "Edge 01", agent_id="edge-01", capabilities=["sftp"])
    assert issued["registration_token"]
    assert issued["agent"]["agent_id"] == "edge-01"
    assert issued["agent"]["slug"] == "edge-01"
    assert issued["agent"]["is_active"] is False
    assert issued["agent"]["capabilities"] == ["sftp"]
    assert issued["expires_at"]

    r = await owner.get("/api/v1/project/agents")
    assert [a["agent_id"] for a in r.json()] == ["edge-01"]
    assert "registration_token" not in r.json()[0]


@pytest.mark.asyncio
async def test_create_agent_duplicate_agent_id(owner):
    await create_agent(owner, "one", agent_id="dup-agent")
    r = await owner.post("/api/v1/project/agents", json={"name": "two", "agent_id": "dup-agent"})
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_analyst_cannot_create_agents(owner, make_client):
    analyst = make_client()
    r = await owner.post(
        "/api/v1/project/invitations", json={"email": "viewer@agents.io", "role": "analyst"}
    )
    await sign_up(analyst, "viewer@agents.io", invite_token=r.json()["token"])

    r = await analyst.post("/api/v1/project/agents", json={"name": "nope"})
    assert r.status_code == 403
    r = await analyst.get("/api/v1/project/agents")
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_agents_are_scoped_to_project(owner):
    issued = await create_agent(owner)
    await create_project(owner, "Other")
    r = await owner.post(f"/api/v1/project/agents/{issued['agent']['id']}/rotate-secret")
    assert r.status_code == 404


# ═══════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_returns_secret_and_token(owner, db_session):
    issued = await create_agent(owner, "edge-01")
    r = await register_agent(owner, issued["registration_token"], "edge-01-renamed")
    assert r.status_code == 201
    body = r.json()
    assert body["agent"]["is_active"] is True
    assert body["agent"]["name"] == "edge-01-renamed"
    assert body["credentials"]["agent_id"] == issued["agent"]["agent_id"]
    assert body["credentials"]["secret"]
    assert body["credentials"]["token"]

    agent = await db_session.get(Agent, issued["agent"]["id"])
    assert agent.registration_token is None
    assert agent.secret_hash != body["credentials"]["secret"]


@pytest.mark.asyncio
async def test_registration_token_works_once(owner):
    issued = await create_agent(owner)
    r = await register_agent(owner, issued["registration_token"])
    assert r.status_code == 201
    r = await register_agent(owner, issued["registration_token"])
    assert r.status_code == 401
    assert r.json()["code"] == "invalid_credentials"


@pytest.mark.asyncio
async def test_expired_registration_token_leaves_agent_untouched(owner, db_session):
    issued = await create_agent(owner)
    await db_session.execute(
        update(Agent).values(
            registration_token_expires_at=datetime.now(timezone.utc) - timedelta(seconds=1)
        )
    )
    await db_session.commit()

    r = await register_agent(owner, issued["registration_token"])
    assert r.status_code == 401
    assert r.json()["code"] == "expired"

    agent = (
        await db_session.execute(select(Agent).where(Agent.id == issued["agent"]["id"]))
    ).scalar_one()
    assert agent.registration_token == issued["registration_token"]
    assert agent.secret_hash is None
    assert agent.is_active is False


@pytest.mark.asyncio
async def test_reissued_registration_token_replaces_old_one(owner):
    issued = await create_agent(owner)
    r = await owner.post(f"/api/v1/project/agents/{issued['agent']['id']}/registration-token")
    assert r.status_code == 200
    fresh = r.json()["registration_token"]
    assert fresh != issued["registration_token"]

    r = await register_agent(owner, issued["registration_token"])
    assert r.status_code == 401
    r = await register_agent(owner, fresh)
    assert r.status_code == 201


@pytest.mark.asyncio
async def test_register_with_unknown_token(client):
    r = await register_agent(client, "reg_not-a-real-token")
    assert r.status_code == 401


# ═══════════════════════════════════════════════════════════
# Authentication and tokens
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_authenticate_with_secret(owner):
    creds = (await _registered(owner))["credentials"]
    r = await owner.post(
        "/api/agent/authenticate",
        json={"agent_id": creds["agent_id"]},
        headers=bearer(creds["secret"]),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 24 * 3600

    r = await owner.get("/api/agent/me", headers=bearer(body["token"]))
    assert r.status_code == 200
    assert r.json()["agent"]["agent_id"] == creds["agent_id"]
    assert r.json()["project_slug"] == "fleet"


@pytest.mark.asyncio
async def test_wrong_secret_is_logged(owner, db_session):
    registered = await _registered(owner)
    creds = registered["credentials"]

    wrong = await owner.post(
        "/api/agent/authenticate",
        json={"agent_id": creds["agent_id"]},
        headers=bearer("not-the-secret"),
    )
    unknown = await owner.post(
        "/api/agent/authenticate",
        json={"agent_id": "agent-nobody"},
        headers=bearer("not-the-secret"),
    )
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()

    actions = (
        await db_session.execute(
            select(AgentActivityLog.action).where(
                AgentActivityLog.agent_id == registered["agent"]["id"]
            )
        )
    ).scalars().all()
    assert activity.AUTHENTICATION_FAILED in actions


@pytest.mark.asyncio
async def test_token_from_one_agent_cannot_act_as_another(owner, db_session):
    a = await _registered(owner, "agent-a")
    b = await _registered(owner, "agent-b")
    agent_a = await db_session.get(Agent, a["agent"]["id"])
    agent_b = await db_session.get(Agent, b["agent"]["id"])

    # Claims name agent B, but the token is signed with agent A's key.
    forged = create_agent_token(agent_b, agent_a.secret_hash)
    r = await owner.get("/api/agent/me", headers=bearer(forged))
    assert r.status_code == 401

    # Claims name agent A's id string with agent B's primary key.
    mixed = create_agent_token(
        SimpleNamespace(id=agent_b.id, agent_id=agent_a.agent_id, project_id=agent_a.project_id),
        agent_a.secret_hash,
    )
    r = await owner.get("/api/agent/me", headers=bearer(mixed))
    assert r.status_code == 401

    r = await owner.get("/api/agent/me", headers=bearer(a["credentials"]["token"]))
    assert r.json()["agent"]["agent_id"] == agent_a.agent_id


@pytest.mark.asyncio
async def test_user_session_is_not_an_agent_token(owner):
    token = owner.cookies.get(settings.session_cookie_name)
    assert token
    r = await owner.get("/api/agent/me", headers=bearer(token))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_refresh_issues_new_token(owner):
    creds = (await _registered(owner))["credentials"]
    r = await owner.post("/api/agent/refresh", headers=bearer(creds["token"]))
    assert r.status_code == 200
    r = await owner.get("/api/agent/me", headers=bearer(r.json()["token"]))
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_rotate_secret_invalidates_old_credentials(owner):
    registered = await _registered(owner)
    creds = registered["credentials"]

    r = await owner.post(f"/api/v1/project/agents/{registered['agent']['id']}/rotate-secret")
    assert r.status_code == 200
    new_secret = r.json()["secret"]
    assert new_secret != creds["secret"]

    r = await owner.get("/api/agent/me", headers=bearer(creds["token"]))
    assert r.status_code == 401

    r = await owner.post(
        "/api/agent/authenticate",
        json={"agent_id": creds["agent_id"]},
        headers=bearer(creds["secret"]),
    )
    assert r.status_code == 401

    r = await owner.post(
        "/api/agent/authenticate",
        json={"agent_id": creds["agent_id"]},
        headers=bearer(new_secret),
    )
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_rotate_secret_before_registration(owner):
    issued = await create_agent(owner)
    r = await owner.post(f"/api/v1/project/agents/{issued['agent']['id']}/rotate-secret")
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_deactivated_agent_is_locked_out(owner):
    registered = await _registered(owner)
    creds = registered["credentials"]

    r = await owner.delete(f"/api/v1/project/agents/{registered['agent']['id']}")
    assert r.status_code == 204

    r = await owner.get("/api/agent/me", headers=bearer(creds["token"]))
    assert r.status_code == 401
    r = await owner.post(
        "/api/agent/authenticate",
        json={"agent_id": creds["agent_id"]},
        headers=bearer(creds["secret"]),
    )
    assert r.status_code == 401

    r = await owner.get("/api/v1/project/agents")
    assert r.json() == []


# ═══════════════════════════════════════════════════════════
# Telemetry and activity
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_submit_and_list_telemetry(owner):
    registered = await _registered(owner)
    token = registered["credentials"]["token"]

    r = await owner.post(
        "/api/agent/telemetry",
        json={"metrics": {"cpu": 0.42, "queue": 3}, "metadata": {"host": "edge"}},
        headers=bearer(token),
    )
    assert r.status_code == 201
    body = r.json()
    assert body["accepted"] is True
    assert body["frequency_ms"] == 1000

    r = await owner.get(f"/api/v1/project/agents/{registered['agent']['id']}/telemetry")
    assert r.status_code == 200
    samples = r.json()
    assert len(samples) == 1
    assert samples[0]["id"] == body["telemetry_id"]
    assert samples[0]["metrics"] == {"cpu": 0.42, "queue": 3}
    assert samples[0]["metadata"] == {"host": "edge"}


@pytest.mark.asyncio
async def test_telemetry_requires_agent_token(owner):
    r = await owner.post("/api/agent/telemetry", json={"metrics": {}})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_agent_activity_trail(owner):
    registered = await _registered(owner)
    await owner.post("/api/agent/refresh", headers=bearer(registered["credentials"]["token"]))

    r = await owner.get(f"/api/v1/project/agents/{registered['agent']['id']}/activity")
    assert r.status_code == 200
    actions = [entry["action"] for entry in r.json()]
    assert actions == [
        activity.AGENT_TOKEN_REFRESHED,
        activity.REGISTER_AGENT,
        activity.CREATE_AGENT,
    ]

"""Company and project invitations: sign-up with a token, acceptance, reuse."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, update

from conftest import PASSWORD, create_project, me, sign_up
from tcp_platform.db.models import (
    CompanyInvitation,
    CompanyMember,
    ProjectInvitation,
    ProjectMember,
    User,
)


async def _invite_to_company(client, email, role="member"):
    r = await client.post("/api/v1/company/invitations", json={"email": email, "role": role})
    assert r.status_code == 201, r.text
    return r.json()


async def _invite_to_project(client, email, role="developer"):
    r = await client.post("/api/v1/project/invitations", json={"email": email, "role": role})
    assert r.status_code == 201, r.text
    return r.json()


# ═══════════════════════════════════════════════════════════
# Company invitations
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_sign_up_with_company_invitation(make_client, db_session):
    owner, invitee = make_client(), make_client()
    await sign_up(owner, "boss@x.com", company_name="Acme")
    invitation = await _invite_to_company(owner, "new@x.com", role="admin")
    assert invitation["status"] == "pending"

    await sign_up(invitee, "new@x.com", invite_token=invitation["token"])
    body = await me(invitee)
    assert body["company"]["slug"] == "acme"
    assert body["company"]["role"] == "admin"

    stored = await db_session.get(CompanyInvitation, invitation["id"])
    assert stored.status == "accepted"


@pytest.mark.asyncio
async def test_sign_up_invitation_email_mismatch_writes_nothing(make_client, db_session):
    owner, invitee = make_client(), make_client()
    await sign_up(owner, "boss2@x.com")
    invitation = await _invite_to_company(owner, "right@x.com")

    r = await invitee.post(
        "/sign-up",
        json={"email": "wrong@x.com", "password": PASSWORD, "invite_token": invitation["token"]},
    )
    assert r.status_code == 403
    users = (await db_session.execute(select(User.email))).scalars().all()
    assert "wrong@x.com" not in users


@pytest.mark.asyncio
async def test_sign_up_with_unknown_invitation(client):
    r = await client.post(
        "/sign-up", json={"email": "x@x.com", "password": PASSWORD, "invite_token": "nope"}
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_sign_up_with_expired_invitation(make_client, db_session):
    owner = make_client()
    await sign_up(owner, "boss3@x.com")
    invitation = await _invite_to_company(owner, "late@x.com")
    await db_session.execute(
        update(CompanyInvitation).values(
            expires_at=datetime.now(timezone.utc) - timedelta(minutes=1)
        )
    )
    await db_session.commit()

    r = await make_client().post(
        "/sign-up",
        json={"email": "late@x.com", "password": PASSWORD, "invite_token": invitation["token"]},
    )
    assert r.status_code == 401
    assert r.json()["code"] == "expired"


@pytest.mark.asyncio
async def test_existing_user_accepts_company_invitation(make_client):
    owner, guest = make_client(), make_client()
    await sign_up(owner, "host@x.com", company_name="Host Co")
    await sign_up(guest, "guest@x.com", company_name="Guest Co")
    invitation = await _invite_to_company(owner, "guest@x.com")

    r = await guest.post("/api/v1/invitations/accept", json={"token": invitation["token"]})
    assert r.status_code == 200
    assert r.json()["company"]["slug"] == "host-co"
    assert r.json()["company"]["role"] == "member"

    r = await guest.post("/api/v1/invitations/accept", json={"token": invitation["token"]})
    assert r.status_code == 409
    assert r.json()["code"] == "already_used"


@pytest.mark.asyncio
async def test_revoked_invitation_cannot_be_used(make_client):
    owner, guest = make_client(), make_client()
    await sign_up(owner, "revoker@x.com")
    invitation = await _invite_to_company(owner, "revoked@x.com")

    r = await owner.delete(f"/api/v1/company/invitations/{invitation['id']}")
    assert r.status_code == 204
    r = await owner.get("/api/v1/company/invitations")
    assert r.json() == []

    r = await guest.post(
        "/sign-up",
        json={"email": "revoked@x.com", "password": PASSWORD, "invite_token": invitation["token"]},
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_cannot_invite_existing_member(client):
    await sign_up(client, "self@x.com")
    r = await client.post("/api/v1/company/invitations", json={"email": "self@x.com"})
    assert r.status_code == 409


# ═══════════════════════════════════════════════════════════
# Project invitations
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_project_invitation_creates_both_memberships_and_fails_on_reuse(
    make_client, db_session
):
    owner, invitee, other = make_client(), make_client(), make_client()
    await sign_up(owner, "lead@x.com", company_name="Proj Co")
    project = await create_project(owner, "Ingest")
    invitation = await _invite_to_project(owner, "dev@x.com", role="developer")

    await sign_up(invitee, "dev@x.com", invite_token=invitation["token"])
    body = await me(invitee)
    assert body["company"]["slug"] == "proj-co"
    assert body["company"]["role"] == "member"
    assert body["project"]["id"] == project["id"]
    assert body["project"]["role"] == "developer"

    user = (await db_session.execute(select(User).where(User.email == "dev@x.com"))).scalar_one()
    company_roles = (
        await db_session.execute(select(CompanyMember.role).where(CompanyMember.user_id == user.id))
    ).scalars().all()
    project_roles = (
        await db_session.execute(select(ProjectMember.role).where(ProjectMember.user_id == user.id))
    ).scalars().all()
    assert company_roles == ["member"]
    assert project_roles == ["developer"]

    stored = await db_session.get(ProjectInvitation, invitation["id"])
    assert stored.status == "accepted"

    # Reuse by a different account, even one with the right email, fails.
    await sign_up(other, "other@x.com")
    r = await other.post("/api/v1/invitations/accept", json={"token": invitation["token"]})
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_project_invitation_for_existing_company_member(make_client):
    owner, teammate = make_client(), make_client()
    await sign_up(owner, "pm@x.com", company_name="Shared")
    company_invite = await _invite_to_company(owner, "mate@x.com", role="admin")
    await sign_up(teammate, "mate@x.com", invite_token=company_invite["token"])

    await create_project(owner, "Archive")
    project_invite = await _invite_to_project(owner, "mate@x.com", role="analyst")

    r = await teammate.post("/api/v1/invitations/accept", json={"token": project_invite["token"]})
    assert r.status_code == 200
    body = r.json()
    # Existing company role is kept.
    assert body["company"]["role"] == "admin"
    assert body["project"]["role"] == "analyst"


@pytest.mark.asyncio
async def test_project_admin_cannot_invite_project_admin(make_client):
    owner, admin = make_client(), make_client()
    await sign_up(owner, "po@x.com")
    await create_project(owner)
    invite = await _invite_to_project(owner, "pa@x.com", role="project_admin")
    await sign_up(admin, "pa@x.com", invite_token=invite["token"])

    r = await admin.post(
        "/api/v1/project/invitations", json={"email": "pa2@x.com", "role": "project_admin"}
    )
    assert r.status_code == 403
    r = await admin.post(
        "/api/v1/project/invitations", json={"email": "dev2@x.com", "role": "developer"}
    )
    assert r.status_code == 201

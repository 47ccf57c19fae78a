"""Request gate: redirects, 401s, sliding refresh, bad cookies."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import PASSWORD, sign_up
from tcp_platform.auth.session import build_user_session
from tcp_platform.auth.tokens import sign_token, verify_token
from tcp_platform.config import settings

COOKIE = settings.session_cookie_name
FORGED_KEY = "forged-key-of-a-perfectly-valid-length"


def _cookie_header(token: str) -> dict[str, str]:
    return {"Cookie": f"{COOKIE}={token}"}


def _session_token(expires_in: timedelta, key: str = settings.auth_secret) -> str:
    payload = build_user_session(1, "ghost@x.com").model_copy(
        update={"expires": datetime.now(timezone.utc) + expires_in}
    )
    return sign_token(payload, key)


# ─── Public and protected pages ───────────────────────────


@pytest.mark.asyncio
async def test_public_paths_pass(client):
    r = await client.get("/health")
    assert r.status_code == 200
    r = await client.get("/sign-in")
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_protected_page_redirects_to_sign_in(client):
    r = await client.get("/dashboard")
    assert r.status_code == 307
    assert r.headers["location"] == "/sign-in?redirect=%2Fdashboard"


@pytest.mark.asyncio
async def test_protected_post_without_cookie_redirects_with_303(client):
    r = await client.post("/sign-out")
    assert r.status_code == 303
    assert r.headers["location"].startswith("/sign-in?redirect=")


@pytest.mark.asyncio
async def test_expired_cookie_is_rejected_and_deleted(client):
    """An expired cookie never reaches the handler as a session."""
    r = await client.get(
        "/dashboard", headers=_cookie_header(_session_token(timedelta(seconds=-10)))
    )
    assert r.status_code == 307
    assert r.headers["location"].startswith("/sign-in")
    assert r.headers["set-cookie"].startswith(f"{COOKIE}=")
    assert "Max-Age=0" in r.headers["set-cookie"]


@pytest.mark.asyncio
async def test_forged_cookie_is_rejected(client):
    r = await client.get(
        "/dashboard", headers=_cookie_header(_session_token(timedelta(days=1), key=FORGED_KEY))
    )
    assert r.status_code == 307
    assert "Max-Age=0" in r.headers["set-cookie"]


@pytest.mark.asyncio
async def test_signed_in_user_is_sent_away_from_auth_pages(client):
    await sign_up(client, "here@x.com")
    r = await client.get("/sign-in")
    assert r.status_code == 307
    assert r.headers["location"] == "/dashboard"
    r = await client.get("/sign-up")
    assert r.status_code == 307


@pytest.mark.asyncio
async def test_signed_in_post_to_auth_page_redirects_with_303(client):
    await sign_up(client, "repost@x.com")
    r = await client.post("/sign-in", json={"email": "repost@x.com", "password": PASSWORD})
    assert r.status_code == 303
    assert r.headers["location"] == "/dashboard"


@pytest.mark.asyncio
async def test_page_get_slides_session_expiry(client):
    r = await sign_up(client, "page-slide@x.com")
    claims = verify_token(r.cookies[COOKIE], settings.auth_secret)
    payload = build_user_session(claims["user"]["id"], claims["user"]["email"]).model_copy(
        update={"expires": datetime.now(timezone.utc) + timedelta(hours=1)}
    )
    client.cookies.clear()

    r = await client.get(
        "/dashboard", headers=_cookie_header(sign_token(payload, settings.auth_secret))
    )
    assert r.status_code == 200
    assert r.json()["user"]["email"] == "page-slide@x.com"
    refreshed = verify_token(r.cookies[COOKIE], settings.auth_secret)
    week = settings.user_session_days * 24 * 3600
    assert abs(refreshed["exp"] - (datetime.now(timezone.utc).timestamp() + week)) < 60


@pytest.mark.asyncio
async def test_page_session_for_unknown_user_is_cleared(client):
    """The cookie verifies, but nobody with that id exists."""
    payload = build_user_session(999, "gone@x.com")
    r = await client.get(
        "/dashboard", headers=_cookie_header(sign_token(payload, settings.auth_secret))
    )
    assert r.status_code == 303
    assert r.headers["location"] == "/sign-in"
    assert r.headers["set-cookie"].startswith(f"{COOKIE}=")
    assert "Max-Age=0" in r.headers["set-cookie"]


@pytest.mark.asyncio
async def test_invalid_cookie_does_not_block_auth_pages(client):
    r = await client.get("/sign-in", headers=_cookie_header("garbage"))
    assert r.status_code == 200


# ─── API paths ────────────────────────────────────────────


@pytest.mark.asyncio
async def test_api_without_credentials_is_401(client):
    r = await client.get("/api/v1/companies")
    assert r.status_code == 401
    assert r.json() == {"detail": "Authentication required", "code": "invalid_credentials"}
    assert r.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_agent_api_requires_bearer_header(client):
    r = await client.post("/api/agent/register", json={"agent_name": "x"})
    assert r.status_code == 401

    # A session cookie is not an agent credential.
    await sign_up(client, "cookie@x.com")
    r = await client.get("/api/agent/me")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_api_bearer_passes_gate_but_handler_verifies(client):
    r = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nonsense"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Authentication required"


@pytest.mark.asyncio
async def test_api_get_slides_session_expiry(client):
    r = await sign_up(client, "slide@x.com")
    original = r.cookies[COOKIE]

    claims = verify_token(original, settings.auth_secret)
    # Same user, but only one hour left on the session.
    payload = build_user_session(claims["user"]["id"], claims["user"]["email"]).model_copy(
        update={"expires": datetime.now(timezone.utc) + timedelta(hours=1)}
    )
    client.cookies.clear()

    r = await client.get(
        "/api/v1/auth/me", headers=_cookie_header(sign_token(payload, settings.auth_secret))
    )
    assert r.status_code == 200
    refreshed = verify_token(r.cookies[COOKIE], settings.auth_secret)
    assert refreshed["exp"] - int(payload.expires.timestamp()) > 6 * 24 * 3600


@pytest.mark.asyncio
async def test_api_post_does_not_refresh(client):
    await sign_up(client, "post@x.com")
    r = await client.post("/api/v1/companies", json={"name": "Other"})
    assert r.status_code == 201
    assert COOKIE not in r.cookies


@pytest.mark.asyncio
async def test_api_get_with_bad_cookie_deletes_it(client):
    r = await client.get(
        "/api/v1/auth/me", headers=_cookie_header(_session_token(timedelta(seconds=-1)))
    )
    assert r.status_code == 401
    assert "Max-Age=0" in r.headers["set-cookie"]

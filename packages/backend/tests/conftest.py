"""Test fixtures: a fresh in-memory database per test, the real app on top.

1. Each test gets its own aiosqlite engine. StaticPool keeps the single
   in-memory connection alive, so every session sees the same database.
2. get_db is overridden to open a new session per request from that
   engine, just like production. Services commit for real.
3. The client talks to the app over https://test so that the Secure
   session cookie round-trips through httpx's cookie jar.

Redis is never initialized, so rate limiting is skipped (see
test_middleware.py for the limiter with a stand-in counter).
"""

import os

os.environ.setdefault("TCP_PLATFORM_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("TCP_PLATFORM_ENVIRONMENT", "development")
os.environ.setdefault("TCP_PLATFORM_BCRYPT_ROUNDS", "4")
os.environ.setdefault("TCP_PLATFORM_AUTH_SECRET", "test-signing-key-that-is-long-enough-for-hs256")

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tcp_platform.db.engine import get_db  # noqa: E402
from tcp_platform.db.models import Base  # noqa: E402
from tcp_platform.main import app  # noqa: E402

TEST_DB_URL = "sqlite+aiosqlite://"
PASSWORD = "correct-horse-battery"


@pytest_asyncio.fixture()
async def engine():
    engine = create_async_engine(TEST_DB_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    """Session for calling services directly and for inspecting rows."""
    async with session_factory() as session:
        yield session


def _client_for(session_factory) -> AsyncClient:
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    return AsyncClient(transport=ASGITransport(app=app), base_url="https://test")


@pytest_asyncio.fixture()
async def client(session_factory):
    """Anonymous client. Cookies set by responses stick, like a browser."""
    async with _client_for(session_factory) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def make_client(session_factory):
    """Factory for extra independent clients (a second user, an agent)."""
    clients = []

    def factory() -> AsyncClient:
        ac = _client_for(session_factory)
        clients.append(ac)
        return ac

    yield factory
    for ac in clients:
        await ac.aclose()
    app.dependency_overrides.clear()


# ─── Flow helpers ──────────────────────────────────────────


async def sign_up(client: AsyncClient, email: str, password: str = PASSWORD, **extra):
    """POST /sign-up and assert it succeeded. The client keeps the cookie."""
    r = await client.post("/sign-up", json={"email": email, "password": password, **extra})
    assert r.status_code == 303, r.text
    return r


async def sign_in(client: AsyncClient, email: str, password: str = PASSWORD, **extra):
    r = await client.post("/sign-in", json={"email": email, "password": password, **extra})
    assert r.status_code == 303, r.text
    return r


async def me(client: AsyncClient) -> dict:
    r = await client.get("/api/v1/auth/me")
    assert r.status_code == 200, r.text
    return r.json()


async def create_project(client: AsyncClient, name: str = "Transfers") -> dict:
    """Create a project in the current company and switch into it."""
    r = await client.post("/api/v1/company/projects", json={"name": name})
    assert r.status_code == 201, r.text
    project = r.json()
    r = await client.post("/api/v1/auth/switch-project", json={"project_id": project["id"]})
    assert r.status_code == 200, r.text
    return project


async def create_agent(client: AsyncClient, name: str = "edge-01", **extra) -> dict:
    r = await client.post("/api/v1/project/agents", json={"name": name, **extra})
    assert r.status_code == 201, r.text
    return r.json()


async def register_agent(client: AsyncClient, registration_token: str, name: str = "edge-01"):
    return await client.post(
        "/api/agent/register",
        json={"agent_name": name},
        headers={"Authorization": f"Bearer {registration_token}"},
    )


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}

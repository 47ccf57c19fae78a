"""tcp-agent CLI: register an agent, get tokens, report telemetry.

Usage:
    tcp-agent register --token <registration-token> --name edge-01 -c upload -c download
    tcp-agent authenticate --agent-id agent-1f2e... --secret <secret>
    tcp-agent refresh --token <agent-token>
    tcp-agent whoami --token <agent-token>
    tcp-agent telemetry --token <agent-token> -m throughput_mbps=812.5 -m active_transfers=3

The server is taken from TCP_PLATFORM_API_URL (default http://localhost:8000).
Credentials can come from TCP_AGENT_REGISTRATION_TOKEN, TCP_AGENT_SECRET
and TCP_AGENT_TOKEN instead of flags, which keeps them out of shell history.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import math
import os
import sys
from typing import Any, Optional

import click
import httpx

from tcp_platform import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"

# Replaced in tests with an httpx.MockTransport.
_transport: Optional[httpx.AsyncBaseTransport] = None


def _api_url() -> str:
    return os.environ.get("TCP_PLATFORM_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0, transport=_transport)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run a coroutine from a synchronous click handler.

    Inside an already running loop (CliRunner under pytest-asyncio) the
    coroutine goes to a worker thread with its own loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


def _bearer(credential: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {credential}"}


def _pretty_json(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def _fail(message: str) -> None:
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


def _check(response: httpx.Response) -> Any:
    """JSON body of a 2xx response; otherwise print the server's detail and exit 1."""
    if response.is_success:
        return response.json()
    try:
        detail = response.json().get("detail", response.text)
    except ValueError:
        detail = response.text
    if isinstance(detail, list):
        detail = "; ".join(str(item.get("msg", item)) for item in detail)
    _fail(f"{response.status_code} {detail}")


async def _call(method: str, path: str, credential: str, body: Optional[dict] = None) -> Any:
    try:
        async with _client() as c:
            r = await c.request(method, path, json=body, headers=_bearer(credential))
    except httpx.HTTPError as e:
        _fail(f"cannot reach {_api_url()}: {e}")
    return _check(r)


def _parse_metric(raw: str) -> tuple[str, Any]:
    """'k=v' → (k, number if v looks like one, else string)."""
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise click.BadParameter(f"expected key=value, got '{raw}'", param_hint="--metric")
    try:
        return key, int(value)
    except ValueError:
        pass
    try:
        number = float(value)
    except ValueError:
        return key, value
    if not math.isfinite(number):
        raise click.BadParameter(
            f"'{key}' must be a finite number, got '{value}'", param_hint="--metric"
        )
    return key, number


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="tcp-agent")
def main():
    """tcp-agent: credentials and telemetry for TCP Agent Platform agents."""


@main.command()
@click.option("--token", envvar="TCP_AGENT_REGISTRATION_TOKEN", required=True,
              help="One-time registration token from the project admin")
@click.option("--name", "agent_name", required=True, help="Display name for this agent")
@click.option("--capability", "-c", "capabilities", multiple=True,
              help="Capability to advertise (repeatable)")
def register(token: str, agent_name: str, capabilities: tuple[str, ...]):
    """Exchange a registration token for the agent's secret and first token."""
    body: dict = {"agent_name": agent_name}
    if capabilities:
        body["capabilities"] = list(capabilities)
    data = _run(_call("POST", "/api/agent/register", token, body))
    click.echo(_pretty_json(data))
    click.secho(
        "Store the secret now. It is not shown again.", fg="yellow", err=True
    )


@main.command()
@click.option("--agent-id", required=True, help="The agent's public id (agent-...)")
@click.option("--secret", envvar="TCP_AGENT_SECRET", required=True, help="The agent's secret")
def authenticate(agent_id: str, secret: str):
    """Trade the agent secret for a fresh agent token."""
    data = _run(_call("POST", "/api/agent/authenticate", secret, {"agent_id": agent_id}))
    click.echo(_pretty_json(data))


@main.command()
@click.option("--token", envvar="TCP_AGENT_TOKEN", required=True, help="Current agent token")
def refresh(token: str):
    """Trade a still-valid agent token for a new one."""
    data = _run(_call("POST", "/api/agent/refresh", token))
    click.echo(_pretty_json(data))


@main.command()
@click.option("--token", envvar="TCP_AGENT_TOKEN", required=True, help="Agent token")
def whoami(token: str):
    """Show the agent the token belongs to."""
    data = _run(_call("GET", "/api/agent/me", token))
    click.echo(_pretty_json(data))


@main.command()
@click.option("--token", envvar="TCP_AGENT_TOKEN", required=True, help="Agent token")
@click.option("--metric", "-m", "metrics", multiple=True, required=True,
              help="Metric as key=value (repeatable)")
def telemetry(token: str, metrics: tuple[str, ...]):
    """Submit one telemetry sample."""
    body = {"metrics": dict(_parse_metric(m) for m in metrics)}
    data = _run(_call("POST", "/api/agent/telemetry", token, body))
    click.echo(_pretty_json(data))


if __name__ == "__main__":
    main()

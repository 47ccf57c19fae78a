"""Session manager: issue, read, refresh and clear sessions.

User sessions live in an http-only cookie signed with the process-wide
key (settings.auth_secret). Agent tokens are handed back in API
payloads and signed with the agent's own key, so one leaked agent key
cannot mint tokens for any other agent or for users.

Every read path returns None instead of raising: a missing, forged,
expired or wrong-type token all mean "no session". The one exception is
refresh_user_session, which lets TokenError through so the request gate
can drop the cookie.

Nothing here touches the database.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from tcp_platform.auth.tokens import TokenError, decode_session, sign_token
from tcp_platform.config import settings
from tcp_platform.db.models import Agent, User
from tcp_platform.schemas.session import (
    AgentSessionData,
    ScopeClaim,
    SessionAgent,
    SessionUser,
    UserSessionData,
)


def user_session_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=settings.user_session_days)


def agent_token_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=settings.agent_token_hours)


# ─── User sessions ──────────────────────────────────────


def build_user_session(
    user_id: int,
    email: str,
    company: Optional[ScopeClaim] = None,
    project: Optional[ScopeClaim] = None,
) -> UserSessionData:
    return UserSessionData(
        user=SessionUser(id=user_id, email=email),
        company=company,
        project=project,
        expires=user_session_expiry(),
    )


def set_session_cookie(response: Response, token: str, expires: datetime) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        token,
        expires=expires,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


def write_user_session(response: Response, payload: UserSessionData) -> str:
    """Sign `payload` with the process key and store it in the cookie."""
    token = sign_token(payload, settings.auth_secret)
    set_session_cookie(response, token, payload.expires)
    return token


def create_user_session(
    response: Response,
    user: User,
    company: Optional[ScopeClaim] = None,
    project: Optional[ScopeClaim] = None,
) -> UserSessionData:
    """Start a fresh 7-day session for `user` and set the cookie."""
    payload = build_user_session(user.id, user.email, company, project)
    write_user_session(response, payload)
    return payload


def verify_user_token(token: Optional[str]) -> Optional[UserSessionData]:
    if not token:
        return None
    try:
        payload = decode_session(token, settings.auth_secret)
    except TokenError:
        return None
    if not isinstance(payload, UserSessionData):
        return None
    return payload


def read_user_session(request: Request) -> Optional[UserSessionData]:
    """Read and verify the session cookie."""
    return verify_user_token(request.cookies.get(settings.session_cookie_name))


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[7:].strip()
    return token or None


def get_session_from_header(authorization: Optional[str]) -> Optional[UserSessionData]:
    """User session from `Authorization: Bearer <token>` (API clients)."""
    return verify_user_token(bearer_token(authorization))


def clear_session(response: Response) -> None:
    """Delete the session cookie. Safe to call when there is none."""
    response.delete_cookie(
        settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


def refresh_user_session(token: str) -> Optional[tuple[str, UserSessionData]]:
    """Sliding expiration: re-sign a valid user session for another 7 days.

    Returns None for agent payloads, which are never silently extended.
    Raises TokenError when the token does not verify.
    """
    payload = decode_session(token, settings.auth_secret)
    if not isinstance(payload, UserSessionData):
        return None
    refreshed = payload.model_copy(update={"expires": user_session_expiry()})
    return sign_token(refreshed, settings.auth_secret), refreshed


# ─── Agent tokens ───────────────────────────────────────


def create_agent_token(agent: Agent, key: str) -> str:
    """1-day agent token signed with that agent's own key."""
    payload = AgentSessionData(
        agent=SessionAgent(
            id=agent.id,
            agent_id=agent.agent_id,
            project_id=agent.project_id,
        ),
        expires=agent_token_expiry(),
    )
    return sign_token(payload, key)


def verify_agent_token(token: str, key: Optional[str]) -> Optional[AgentSessionData]:
    """Verify against one agent's key. Any failure, including a user token, is None."""
    if not token or not key:
        return None
    try:
        payload = decode_session(token, key)
    except TokenError:
        return None
    if not isinstance(payload, AgentSessionData):
        return None
    return payload

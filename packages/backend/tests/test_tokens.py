"""Token codec: signing, verification failures, session shapes."""

import base64
import json
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from tcp_platform.auth.tokens import (
    InvalidSignature,
    MalformedToken,
    TokenExpired,
    decode_session,
    peek_claims,
    sign_token,
    verify_token,
)
from tcp_platform.schemas.session import (
    AgentSessionData,
    ScopeClaim,
    SessionAgent,
    SessionUser,
    UserSessionData,
)

KEY = "unit-test-key-long-enough-for-hmac-sha256"


def _user_payload(expires_in=timedelta(days=7)) -> UserSessionData:
    return UserSessionData(
        user=SessionUser(id=1, email="a@x.com"),
        company=ScopeClaim(id=10, slug="acme", role="owner"),
        expires=datetime.now(timezone.utc) + expires_in,
    )


def _agent_payload() -> AgentSessionData:
    return AgentSessionData(
        agent=SessionAgent(id=7, agent_id="agent-abc", project_id=3),
        expires=datetime.now(timezone.utc) + timedelta(hours=24),
    )


def test_user_session_round_trip():
    token = sign_token(_user_payload(), KEY)
    decoded = decode_session(token, KEY)
    assert isinstance(decoded, UserSessionData)
    assert decoded.user.email == "a@x.com"
    assert decoded.company.slug == "acme"
    assert decoded.project is None


def test_agent_claims_use_camel_case_keys():
    token = sign_token(_agent_payload(), KEY)
    claims = verify_token(token, KEY)
    assert claims["type"] == "agent"
    assert claims["agent"] == {"id": 7, "agentId": "agent-abc", "projectId": 3}

    decoded = decode_session(token, KEY)
    assert isinstance(decoded, AgentSessionData)
    assert decoded.agent.agent_id == "agent-abc"


def test_exp_matches_payload_expiry():
    payload = _user_payload()
    claims = verify_token(sign_token(payload, KEY), KEY)
    assert claims["exp"] == int(payload.expires.timestamp())
    assert "iat" in claims


def test_wrong_key_is_invalid_signature():
    token = sign_token(_user_payload(), KEY)
    with pytest.raises(InvalidSignature):
        verify_token(token, "another-key-long-enough-for-hmac-sha256")


def test_expired_token():
    token = sign_token(_user_payload(expires_in=timedelta(seconds=-5)), KEY)
    with pytest.raises(TokenExpired):
        decode_session(token, KEY)


@pytest.mark.parametrize("token", ["", "not-a-token", "a.b.c"])
def test_garbage_is_malformed(token):
    with pytest.raises(MalformedToken):
        verify_token(token, KEY)


def test_tampered_payload_fails_signature():
    token = sign_token(_user_payload(), KEY)
    header, payload, signature = token.split(".")
    claims = json.loads(base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4)))
    claims["company"]["role"] = "owner"
    claims["user"]["id"] = 2
    forged = base64.urlsafe_b64encode(json.dumps(claims).encode()).rstrip(b"=").decode()
    with pytest.raises(InvalidSignature):
        verify_token(f"{header}.{forged}.{signature}", KEY)


def test_unknown_session_shape_is_malformed():
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"type": "robot", "iat": now, "exp": now + timedelta(hours=1)}, KEY, algorithm="HS256"
    )
    with pytest.raises(MalformedToken):
        decode_session(token, KEY)


def test_missing_exp_is_malformed():
    token = jwt.encode({"type": "user", "iat": datetime.now(timezone.utc)}, KEY, algorithm="HS256")
    with pytest.raises(MalformedToken):
        verify_token(token, KEY)


def test_peek_claims_reads_without_key():
    token = sign_token(_agent_payload(), KEY)
    claims = peek_claims(token)
    assert claims["agent"]["agentId"] == "agent-abc"


def test_peek_claims_rejects_non_json():
    with pytest.raises(MalformedToken):
        peek_claims("x.@@@.y")

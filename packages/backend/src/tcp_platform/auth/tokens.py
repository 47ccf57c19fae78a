"""Token codec: compact HS256 tokens carrying session claims.

The payload is a SessionData model (see session.py) dumped to JSON plus
the registered `iat` and `exp` claims. `exp` is taken from the payload's
own `expires` field so both always agree.

Verification errors are split three ways so callers can tell a forged
token from a stale one:
- InvalidSignature: wrong key
- TokenExpired: past `exp`
- MalformedToken: not a JWT, or claims don't fit either session shape
"""

import json
from base64 import urlsafe_b64decode
from datetime import datetime, timezone
from typing import Any

import jwt
from pydantic import ValidationError

from tcp_platform.schemas.session import SessionData, session_adapter
from tcp_platform.config import settings


class TokenError(Exception):
    """Raised when token verification fails."""


class InvalidSignature(TokenError):
    pass


class TokenExpired(TokenError):
    pass


class MalformedToken(TokenError):
    pass


def sign_token(payload: SessionData, key: str) -> str:
    """Sign a session payload with `key`."""
    claims = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    claims["iat"] = datetime.now(timezone.utc)
    claims["exp"] = payload.expires
    return jwt.encode(claims, key, algorithm=settings.jwt_algorithm)


def verify_token(token: str, key: str) -> dict[str, Any]:
    """Verify signature and expiry; return the raw claims."""
    try:
        return jwt.decode(
            token,
            key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired("Token has expired")
    # InvalidSignatureError subclasses DecodeError, so it goes first.
    except jwt.InvalidSignatureError:
        raise InvalidSignature("Token signature does not match")
    except jwt.InvalidTokenError as e:
        raise MalformedToken(f"Invalid token: {e}")


def decode_session(token: str, key: str) -> SessionData:
    """Verify a token and validate its claims into a session payload."""
    claims = verify_token(token, key)
    try:
        return session_adapter.validate_python(claims)
    except ValidationError as e:
        raise MalformedToken(f"Invalid session claims: {e.error_count()} error(s)")


def peek_claims(token: str) -> dict[str, Any]:
    """Decode the claims WITHOUT verifying anything.

    Only for picking which key to verify with. Never trust the result.
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise MalformedToken("Token must have three segments")
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(urlsafe_b64decode(segment))
    except ValueError:
        raise MalformedToken("Token payload is not valid JSON")
    if not isinstance(claims, dict):
        raise MalformedToken("Token payload is not an object")
    return claims

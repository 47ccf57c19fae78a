"""Password and agent-secret hashing, plus one-time credential generation.

bcrypt includes a random salt in every hash. Passwords and agent secrets
use the same primitive; inputs are truncated to bcrypt's 72-byte limit.
"""

import secrets

import bcrypt

from tcp_platform.config import settings


def _hash(value: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(value.encode("utf-8")[:72], salt).decode("utf-8")


def _check(value: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(value.encode("utf-8")[:72], hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def hash_password(password: str) -> str:
    return _hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    """Check a password. Malformed or missing hashes never match."""
    return _check(password, password_hash)


def hash_agent_secret(secret: str) -> str:
    return _hash(secret)


def verify_agent_secret(secret: str, secret_hash: str | None) -> bool:
    return _check(secret, secret_hash)


def generate_agent_secret() -> str:
    """Long-lived agent secret. Shown to the operator exactly once."""
    return secrets.token_hex(32)


def generate_registration_token() -> str:
    """One-time token an agent exchanges for its secret."""
    return secrets.token_hex(32)


def generate_invitation_token() -> str:
    return secrets.token_hex(32)


_dummy_hash: str | None = None


def dummy_verify(value: str) -> None:
    """Run one bcrypt check against a throwaway hash.

    Called when the account or agent doesn't exist, so the response takes
    as long as a real wrong-password check.
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = _hash(secrets.token_hex(16))
    _check(value, _dummy_hash)

"""Password/secret hashing and one-time credential generation."""

from tcp_platform.auth.password import (
    dummy_verify,
    generate_agent_secret,
    generate_invitation_token,
    generate_registration_token,
    hash_agent_secret,
    hash_password,
    verify_agent_secret,
    verify_password,
)


def test_hash_and_verify():
    hashed = hash_password("correct-horse")
    assert hashed != "correct-horse"
    assert hashed.startswith("$2")
    assert verify_password("correct-horse", hashed)
    assert not verify_password("wrong-horse", hashed)


def test_hashes_are_salted():
    assert hash_password("same") != hash_password("same")


def test_missing_or_malformed_hash_never_matches():
    assert not verify_password("anything", None)
    assert not verify_password("anything", "")
    assert not verify_password("anything", "not-a-bcrypt-hash")


def test_agent_secret_hashing():
    secret = generate_agent_secret()
    hashed = hash_agent_secret(secret)
    assert verify_agent_secret(secret, hashed)
    assert not verify_agent_secret(generate_agent_secret(), hashed)


def test_generated_credentials_are_random_hex():
    tokens = {generate_registration_token() for _ in range(20)}
    assert len(tokens) == 20
    for token in tokens:
        assert len(token) == 64
        int(token, 16)
    assert generate_invitation_token() != generate_invitation_token()


def test_dummy_verify_returns_nothing():
    assert dummy_verify("whatever") is None

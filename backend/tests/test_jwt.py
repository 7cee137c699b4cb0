"""Unit tests for access tokens: HS256 and RS256, kid header, invalid signature, expiration."""

from datetime import datetime, timezone, timedelta
from unittest.mock import patch

import pytest
from jose import JWTError, jwt

from app.config import settings
from app.core.auth import (
    ACCESS_TOKEN_TTL,
    Unauthenticated,
    create_access_token,
    decode_token,
    verify_access_token,
)
from app.core.role import Role


def test_create_and_verify_token_roundtrip_hs256():
    """Default config uses HS256; mint then verify returns user id and role."""
    token = create_access_token(user_id=42, role=Role.ADMIN)
    assert isinstance(token, str)
    claims = verify_access_token(token)
    assert claims.user_id == 42
    assert claims.role is Role.ADMIN
    remaining = (claims.expires_at - datetime.now(timezone.utc)).total_seconds()
    assert 0 < remaining <= ACCESS_TOKEN_TTL


def test_token_carries_kid_and_claims():
    token = create_access_token(user_id=3, role="user")
    assert jwt.get_unverified_header(token)["kid"] == settings.jwt_key_version
    payload = decode_token(token)
    assert payload["sub"] == "3"
    assert payload["role"] == "user"
    assert payload["exp"] - payload["iat"] == ACCESS_TOKEN_TTL


def test_default_ttl_is_thirty_minutes():
    assert ACCESS_TOKEN_TTL == 30 * 60


def test_verify_invalid_signature_raises():
    token = create_access_token(user_id=1, role=Role.USER)
    head, payload, sig = token.split(".")
    bad_token = ".".join([head, payload, ("A" if sig[0] != "A" else "B") + sig[1:]])
    with pytest.raises(Unauthenticated):
        verify_access_token(bad_token)


def test_verify_expired_token_raises():
    """Build an expired token manually so we don't depend on clock."""
    payload = {
        "sub": "1",
        "role": "user",
        "iat": int((datetime.now(timezone.utc) - timedelta(hours=1)).timestamp()),
        "exp": int((datetime.now(timezone.utc) - timedelta(minutes=1)).timestamp()),
    }
    token = jwt.encode(
        payload, settings.secret_key, algorithm=settings.jwt_algorithm, headers={"kid": settings.jwt_key_version}
    )
    with pytest.raises(Unauthenticated):
        verify_access_token(token)


def test_verify_wrong_key_raises():
    token = create_access_token(user_id=1, role=Role.USER)
    with patch.object(settings, "secret_key", "other-secret"):
        with pytest.raises(Unauthenticated):
            verify_access_token(token)


def test_verify_wrong_kid_raises():
    token = create_access_token(user_id=1, role=Role.USER)
    with patch.object(settings, "jwt_key_version", "2"):
        with pytest.raises(JWTError):
            decode_token(token)
        with pytest.raises(Unauthenticated):
            verify_access_token(token)


def test_verify_token_without_kid_raises():
    payload = {"sub": "1", "role": "user", "exp": int(datetime.now(timezone.utc).timestamp()) + 60}
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    with pytest.raises(Unauthenticated):
        verify_access_token(token)


def test_verify_unknown_role_raises():
    payload = {"sub": "1", "role": "superuser", "exp": int(datetime.now(timezone.utc).timestamp()) + 60}
    token = jwt.encode(
        payload, settings.secret_key, algorithm=settings.jwt_algorithm, headers={"kid": settings.jwt_key_version}
    )
    with pytest.raises(Unauthenticated):
        verify_access_token(token)


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
def test_verify_garbage_raises(token):
    with pytest.raises(Unauthenticated):
        verify_access_token(token)


def test_create_and_verify_token_roundtrip_rs256():
    """When RSA keys are set (mocked), sign with private key and verify with public key."""
    from cryptography.hazmat.primitives.asymmetric import rsa
    from cryptography.hazmat.primitives import serialization

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = (
        key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("utf-8")
    )
    with patch.object(settings, "jwt_private_key", private_pem):
        with patch.object(settings, "jwt_public_key", public_pem):
            token = create_access_token(user_id=99, role=Role.USER)
            assert jwt.get_unverified_header(token)["alg"] == "RS256"
            claims = verify_access_token(token)
            assert claims.user_id == 99
            assert claims.role is Role.USER

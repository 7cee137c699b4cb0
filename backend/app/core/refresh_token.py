"""
Opaque refresh credentials.

A credential is the unpadded urlsafe base64 of ``user_id (8 bytes, big-endian) || secret``.
The user id is recoverable without a database lookup; it only selects which slot to check.
Authenticity is decided by comparing the argon2id digest of the whole credential string.
"""

from __future__ import annotations

import base64
import binascii
import secrets

SECRET_BYTES = 32
_ID_BYTES = 8
_RAW_LENGTH = _ID_BYTES + SECRET_BYTES
_MAX_USER_ID = 2**63 - 1


class MalformedCredential(ValueError):
    """The presented refresh credential cannot be parsed."""


def _encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def new_refresh_token(user_id: int) -> str:
    """Generate a refresh credential for user_id (caller must hash and store it)."""
    if not 0 < user_id <= _MAX_USER_ID:
        raise ValueError(f"user id out of range: {user_id}")
    raw = user_id.to_bytes(_ID_BYTES, "big") + secrets.token_bytes(SECRET_BYTES)
    return _encode(raw)


def extract_user_id(token: str) -> int:
    """Return the user id embedded in token. Raises MalformedCredential."""
    if not token or not isinstance(token, str):
        raise MalformedCredential("empty refresh token")
    try:
        raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
    except (binascii.Error, ValueError) as e:
        raise MalformedCredential("refresh token is not base64") from e
    if len(raw) != _RAW_LENGTH or _encode(raw) != token:
        raise MalformedCredential("refresh token has unexpected shape")
    user_id = int.from_bytes(raw[:_ID_BYTES], "big")
    if not 0 < user_id <= _MAX_USER_ID:
        raise MalformedCredential("refresh token carries invalid user id")
    return user_id

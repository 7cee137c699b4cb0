"""Password hashing and JWT creation/verification."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, TypeVar

from jose import JWTError, jwt

from app.config import settings
from app.core import argon2id
from app.core.role import Role

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACCESS_TOKEN_TTL = settings.access_token_expire_minutes * 60  # seconds

# Verified against when the email is unknown so both login failures cost one argon2 run
_DUMMY_PASSWORD_RECORD: str | None = None

_hash_slots: tuple[asyncio.AbstractEventLoop, asyncio.Semaphore] | None = None


class Unauthenticated(Exception):
    """Access token signature, kid or expiry check failed."""


@dataclass(frozen=True)
class AccessClaims:
    user_id: int
    role: Role
    expires_at: datetime


def _semaphore() -> asyncio.Semaphore:
    """Per-event-loop semaphore bounding in-flight argon2 computations."""
    global _hash_slots
    loop = asyncio.get_running_loop()
    if _hash_slots is None or _hash_slots[0] is not loop:
        _hash_slots = (loop, asyncio.Semaphore(max(1, settings.max_concurrent_hashes)))
    return _hash_slots[1]


async def run_hashing(fn: Callable[..., T], *args: Any) -> T:
    """Run a CPU/memory-heavy hashing call in a worker thread, at most max_concurrent_hashes at once."""
    async with _semaphore():
        return await asyncio.to_thread(fn, *args)


def hash_password(password: str) -> str:
    """Hash password with argon2id under the current default parameters."""
    return argon2id.encode_hash(password, settings.default_argon2_params)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify password against its stored argon2id record. Raises MalformedHashRecord on a corrupt record."""
    return argon2id.verify_secret(plain_password, password_hash)


def burn_password_check(plain_password: str) -> bool:
    """Spend the same work as a real verification; always False."""
    global _DUMMY_PASSWORD_RECORD
    if _DUMMY_PASSWORD_RECORD is None:
        _DUMMY_PASSWORD_RECORD = hash_password("dummy-password-for-timing")
    argon2id.verify_secret(plain_password, _DUMMY_PASSWORD_RECORD)
    return False


def _get_jwt_signing_key_and_algorithm() -> tuple[str, str]:
    """Return (key, algorithm) for signing access tokens."""
    if settings.use_rs256:
        return settings.jwt_private_key.strip(), "RS256"
    return settings.secret_key, settings.jwt_algorithm


def _get_jwt_verification_key_and_algorithms() -> tuple[str, list[str]]:
    """Return (key, algorithms) for verifying access tokens."""
    if settings.use_rs256:
        return settings.jwt_public_key.strip(), ["RS256"]
    return settings.secret_key, [settings.jwt_algorithm]


def create_access_token(user_id: int, role: Role | str) -> str:
    now = datetime.now(timezone.utc)
    expire = now + timedelta(seconds=ACCESS_TOKEN_TTL)
    payload = {
        "sub": str(user_id),
        "role": Role(role).value,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    key, algorithm = _get_jwt_signing_key_and_algorithm()
    result = jwt.encode(payload, key, algorithm=algorithm, headers={"kid": settings.jwt_key_version})
    return result if isinstance(result, str) else result.decode("utf-8")


def decode_token(token: str) -> dict[str, Any]:
    """Check kid, signature and expiry; return the claims. Raises JWTError."""
    header = jwt.get_unverified_header(token)
    if header.get("kid") != settings.jwt_key_version:
        raise JWTError("unexpected kid")
    key, algorithms = _get_jwt_verification_key_and_algorithms()
    return jwt.decode(token, key, algorithms=algorithms)


def verify_access_token(token: str) -> AccessClaims:
    """Validate an access token and return its claims. Raises Unauthenticated."""
    if not token:
        raise Unauthenticated("missing access token")
    try:
        payload = decode_token(token)
    except JWTError as e:
        raise Unauthenticated(str(e)) from e
    try:
        user_id = int(payload["sub"])
        role = Role(payload["role"])
        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
    except (KeyError, TypeError, ValueError) as e:
        raise Unauthenticated("access token claims are incomplete") from e
    return AccessClaims(user_id=user_id, role=role, expires_at=expires_at)

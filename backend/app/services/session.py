"""
Login and refresh-token rotation.

refresh_session walks a presented refresh credential through
parse -> look up slot -> recompute digest -> compare -> check expiry -> rotate (CAS) -> read role -> issue.
Every failure ends in SessionRejected; clients only ever see invalid_refresh_token or
internal_server_error, while the internal cause is logged and counted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from argon2.exceptions import HashingError
from jose import JWTError
from prometheus_client import Counter

from app.config import settings
from app.core import argon2id
from app.core.auth import (
    ACCESS_TOKEN_TTL,
    burn_password_check,
    create_access_token,
    run_hashing,
    verify_password,
)
from app.core.errors import ApiError, ErrorCode
from app.core.refresh_token import MalformedCredential, extract_user_id, new_refresh_token
from app.core.request_id import get_request_id
from app.services.credential_store import (
    CasResult,
    CredentialSlot,
    CredentialStore,
    PersistenceUnavailable,
    PrincipalNotFound,
)

logger = logging.getLogger(__name__)

TOKEN_TYPE = "Bearer"

AUTH_OUTCOMES = Counter(
    "auth_session_outcomes_total",
    "Login and refresh outcomes by internal cause",
    ["operation", "outcome"],
)


class RejectReason(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    MALFORMED_CREDENTIAL = "malformed_credential"
    NO_SUCH_PRINCIPAL = "no_such_principal"
    SLOT_EMPTY = "slot_empty"
    DIGEST_MISMATCH = "digest_mismatch"
    CREDENTIAL_EXPIRED = "credential_expired"
    UNKNOWN_EMAIL = "unknown_email"
    WRONG_PASSWORD = "wrong_password"
    PERSISTENCE_UNAVAILABLE = "persistence_unavailable"
    HASH_RECORD_CORRUPT = "hash_record_corrupt"
    HASHING_FAILURE = "hashing_failure"
    SIGNING_FAILURE = "signing_failure"
    ROTATION_CONFLICT = "rotation_conflict"


_INVALID_REFRESH = {
    RejectReason.MISSING_CREDENTIAL,
    RejectReason.MALFORMED_CREDENTIAL,
    RejectReason.NO_SUCH_PRINCIPAL,
    RejectReason.SLOT_EMPTY,
    RejectReason.DIGEST_MISMATCH,
    RejectReason.CREDENTIAL_EXPIRED,
}
_INVALID_LOGIN = {RejectReason.UNKNOWN_EMAIL, RejectReason.WRONG_PASSWORD}


class SessionRejected(ApiError):
    """Login or refresh failed. reason stays internal; code is what the client sees."""

    def __init__(self, reason: RejectReason, login: bool = False):
        self.reason = reason
        if reason in _INVALID_LOGIN or (login and reason in _INVALID_REFRESH):
            code = ErrorCode.INVALID_CREDENTIALS
        elif reason in _INVALID_REFRESH:
            code = ErrorCode.INVALID_REFRESH_TOKEN
        else:
            code = ErrorCode.INTERNAL_SERVER_ERROR
        super().__init__(code)


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str
    token_type: str = TOKEN_TYPE
    expires_in: int = ACCESS_TOKEN_TTL


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _equalize_timing(presented: str) -> None:
    """Spend one argon2 verification so early rejections cost about as much as a digest mismatch."""
    try:
        await run_hashing(burn_password_check, presented)
    except HashingError:
        pass


async def _new_slot(user_id: int) -> tuple[str, CredentialSlot]:
    token = new_refresh_token(user_id)
    try:
        record = await run_hashing(argon2id.encode_hash, token, settings.default_argon2_params)
    except HashingError as e:
        raise SessionRejected(RejectReason.HASHING_FAILURE) from e
    expires_at = _now() + timedelta(days=settings.refresh_token_expire_days)
    return token, CredentialSlot(hash_record=record, expires_at=expires_at)


async def _issue_access_token(store: CredentialStore, user_id: int, login: bool = False) -> str:
    """Mint an access token with the role as stored right now."""
    try:
        role = await store.get_role(user_id)
    except PersistenceUnavailable as e:
        raise SessionRejected(RejectReason.PERSISTENCE_UNAVAILABLE, login) from e
    except PrincipalNotFound as e:
        raise SessionRejected(RejectReason.NO_SUCH_PRINCIPAL, login) from e
    try:
        return create_access_token(user_id, role)
    except (JWTError, ValueError) as e:
        raise SessionRejected(RejectReason.SIGNING_FAILURE, login) from e


async def _load_slot(store: CredentialStore, user_id: int, presented: str) -> CredentialSlot:
    try:
        slot = await store.get_credential_slot(user_id)
    except PersistenceUnavailable as e:
        raise SessionRejected(RejectReason.PERSISTENCE_UNAVAILABLE) from e
    except PrincipalNotFound:
        await _equalize_timing(presented)
        raise SessionRejected(RejectReason.NO_SUCH_PRINCIPAL) from None
    if slot is None:
        await _equalize_timing(presented)
        raise SessionRejected(RejectReason.SLOT_EMPTY)
    return slot


async def _check_presented(slot: CredentialSlot, presented: str) -> None:
    try:
        matches = await run_hashing(argon2id.verify_secret, presented, slot.hash_record)
    except argon2id.MalformedHashRecord as e:
        raise SessionRejected(RejectReason.HASH_RECORD_CORRUPT) from e
    if not matches:
        raise SessionRejected(RejectReason.DIGEST_MISMATCH)
    if _now() >= slot.expires_at:
        raise SessionRejected(RejectReason.CREDENTIAL_EXPIRED)


async def _rotate(store: CredentialStore, presented: str) -> IssuedTokens:
    if not presented:
        raise SessionRejected(RejectReason.MISSING_CREDENTIAL)
    try:
        user_id = extract_user_id(presented)
    except MalformedCredential:
        await _equalize_timing(presented)
        raise SessionRejected(RejectReason.MALFORMED_CREDENTIAL) from None

    attempts = 1 + max(0, settings.rotation_max_retries)
    for attempt in range(1, attempts + 1):
        slot = await _load_slot(store, user_id, presented)
        await _check_presented(slot, presented)
        new_token, new_slot = await _new_slot(user_id)
        try:
            result = await store.compare_and_swap_credential_slot(user_id, slot.hash_record, new_slot)
        except PersistenceUnavailable as e:
            raise SessionRejected(RejectReason.PERSISTENCE_UNAVAILABLE) from e
        if result is CasResult.OK:
            break
        if result is CasResult.NOT_FOUND:
            raise SessionRejected(RejectReason.NO_SUCH_PRINCIPAL)
        # Slot changed since it was read; re-verify against whatever is there now
        logger.info("Refresh slot of user %s changed during rotation (attempt %d/%d)", user_id, attempt, attempts)
    else:
        raise SessionRejected(RejectReason.ROTATION_CONFLICT)

    access_token = await _issue_access_token(store, user_id)
    logger.debug("Rotated refresh token for user %s", user_id)
    return IssuedTokens(access_token=access_token, refresh_token=new_token)


def _record_refresh_rejection(e: SessionRejected) -> None:
    AUTH_OUTCOMES.labels(operation="refresh", outcome=e.reason.value).inc()
    log = logger.error if e.code is ErrorCode.INTERNAL_SERVER_ERROR else logger.warning
    log("Refresh rejected: %s (request_id=%s)", e.reason.value, get_request_id())


def reject_unreadable_refresh_request() -> SessionRejected:
    """Rejection for a refresh request whose body could not be parsed at all."""
    e = SessionRejected(RejectReason.MALFORMED_CREDENTIAL)
    _record_refresh_rejection(e)
    return e


async def refresh_session(store: CredentialStore, presented: str | None) -> IssuedTokens:
    """Exchange a refresh credential for a new access token and a new refresh credential.

    The presented credential is dead once this returns. Raises SessionRejected.
    """
    try:
        tokens = await _rotate(store, (presented or "").strip())
    except SessionRejected as e:
        _record_refresh_rejection(e)
        raise
    AUTH_OUTCOMES.labels(operation="refresh", outcome="ok").inc()
    return tokens


async def issue_session(store: CredentialStore, user_id: int) -> IssuedTokens:
    """Start a session for an authenticated user, superseding any earlier refresh credential."""
    new_token, new_slot = await _new_slot(user_id)
    try:
        await store.replace_credential_slot(user_id, new_slot)
    except PersistenceUnavailable as e:
        raise SessionRejected(RejectReason.PERSISTENCE_UNAVAILABLE, login=True) from e
    except PrincipalNotFound as e:
        raise SessionRejected(RejectReason.NO_SUCH_PRINCIPAL, login=True) from e
    access_token = await _issue_access_token(store, user_id, login=True)
    return IssuedTokens(access_token=access_token, refresh_token=new_token)


async def _authenticate(store: CredentialStore, email: str, password: str) -> int:
    try:
        record = await store.get_login_record(email)
    except PersistenceUnavailable as e:
        raise SessionRejected(RejectReason.PERSISTENCE_UNAVAILABLE, login=True) from e
    if record is None:
        await _equalize_timing(password)
        raise SessionRejected(RejectReason.UNKNOWN_EMAIL)
    try:
        matches = await run_hashing(verify_password, password, record.password_hash)
    except argon2id.MalformedHashRecord as e:
        raise SessionRejected(RejectReason.HASH_RECORD_CORRUPT, login=True) from e
    if not matches:
        raise SessionRejected(RejectReason.WRONG_PASSWORD)

    if argon2id.needs_rehash(record.password_hash, settings.default_argon2_params):
        new_hash = await run_hashing(argon2id.encode_hash, password, settings.default_argon2_params)
        try:
            result = await store.update_password_hash(record.user_id, record.password_hash, new_hash)
        except PersistenceUnavailable as e:
            raise SessionRejected(RejectReason.PERSISTENCE_UNAVAILABLE, login=True) from e
        logger.info("Upgraded password hash parameters for user %s: %s", record.user_id, result.value)
    return record.user_id


async def login(store: CredentialStore, email: str, password: str) -> IssuedTokens:
    """Verify email/password and start a session. Raises SessionRejected."""
    try:
        user_id = await _authenticate(store, email.strip().lower(), password)
        tokens = await issue_session(store, user_id)
    except SessionRejected as e:
        AUTH_OUTCOMES.labels(operation="login", outcome=e.reason.value).inc()
        logger.warning("Login rejected: %s (request_id=%s)", e.reason.value, get_request_id())
        raise
    AUTH_OUTCOMES.labels(operation="login", outcome="ok").inc()
    return tokens

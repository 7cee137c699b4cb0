"""
Per-user refresh credential slot and role, read and written by the session service.

Each user row holds at most one hashed refresh credential plus its expiry. Rotation writes go
through compare_and_swap_credential_slot, a single conditional UPDATE that only lands if the row
still holds the hash the caller verified.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.role import Role
from app.models.user import User

logger = logging.getLogger(__name__)


class PersistenceUnavailable(Exception):
    """The database could not be reached or rejected the statement."""


class PrincipalNotFound(Exception):
    pass


class CasResult(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class CredentialSlot:
    hash_record: str
    expires_at: datetime


@dataclass(frozen=True)
class LoginRecord:
    user_id: int
    password_hash: str


class CredentialStore(Protocol):
    async def get_credential_slot(self, user_id: int) -> CredentialSlot | None:
        """Slot of user_id, None if never populated. Raises PrincipalNotFound."""
        ...

    async def compare_and_swap_credential_slot(
        self, user_id: int, expected_hash: str | None, new_slot: CredentialSlot
    ) -> CasResult:
        ...

    async def replace_credential_slot(self, user_id: int, new_slot: CredentialSlot) -> None:
        """Unconditional overwrite (login). Raises PrincipalNotFound."""
        ...

    async def get_role(self, user_id: int) -> Role:
        ...

    async def get_login_record(self, email: str) -> LoginRecord | None:
        ...

    async def update_password_hash(self, user_id: int, expected_hash: str, new_hash: str) -> CasResult:
        ...


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; stored values are always UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@contextmanager
def _db_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (SQLAlchemyError, OSError) as e:
        logger.error("Credential store %s failed: %s", operation, type(e).__name__)
        raise PersistenceUnavailable(operation) from e


class SqlCredentialStore:
    """CredentialStore over the users table. Writes are committed before returning."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_credential_slot(self, user_id: int) -> CredentialSlot | None:
        with _db_errors("get_credential_slot"):
            r = await self.session.execute(
                select(User.refresh_token_hash, User.refresh_token_expires_at).where(User.id == user_id)
            )
            row = r.one_or_none()
        if row is None:
            raise PrincipalNotFound(user_id)
        token_hash, expires_at = row
        if token_hash is None or expires_at is None:
            return None
        return CredentialSlot(hash_record=token_hash, expires_at=as_utc(expires_at))

    async def _user_exists(self, user_id: int) -> bool:
        r = await self.session.execute(select(User.id).where(User.id == user_id))
        return r.scalar_one_or_none() is not None

    async def compare_and_swap_credential_slot(
        self, user_id: int, expected_hash: str | None, new_slot: CredentialSlot
    ) -> CasResult:
        stmt = (
            update(User)
            .where(User.id == user_id, User.refresh_token_hash.is_not_distinct_from(expected_hash))
            .values(refresh_token_hash=new_slot.hash_record, refresh_token_expires_at=new_slot.expires_at)
            .execution_options(synchronize_session=False)
        )
        with _db_errors("compare_and_swap_credential_slot"):
            result = await self.session.execute(stmt)
            if result.rowcount == 1:
                await self.session.commit()
                return CasResult.OK
            await self.session.rollback()
            exists = await self._user_exists(user_id)
        return CasResult.CONFLICT if exists else CasResult.NOT_FOUND

    async def replace_credential_slot(self, user_id: int, new_slot: CredentialSlot) -> None:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(refresh_token_hash=new_slot.hash_record, refresh_token_expires_at=new_slot.expires_at)
            .execution_options(synchronize_session=False)
        )
        with _db_errors("replace_credential_slot"):
            result = await self.session.execute(stmt)
            if result.rowcount != 1:
                await self.session.rollback()
                raise PrincipalNotFound(user_id)
            await self.session.commit()

    async def get_role(self, user_id: int) -> Role:
        with _db_errors("get_role"):
            r = await self.session.execute(select(User.role).where(User.id == user_id))
            role = r.scalar_one_or_none()
        if role is None:
            raise PrincipalNotFound(user_id)
        return Role(role)

    async def get_login_record(self, email: str) -> LoginRecord | None:
        with _db_errors("get_login_record"):
            r = await self.session.execute(select(User.id, User.password_hash).where(User.email == email))
            row = r.one_or_none()
        if row is None:
            return None
        return LoginRecord(user_id=row[0], password_hash=row[1])

    async def update_password_hash(self, user_id: int, expected_hash: str, new_hash: str) -> CasResult:
        stmt = (
            update(User)
            .where(User.id == user_id, User.password_hash == expected_hash)
            .values(password_hash=new_hash)
            .execution_options(synchronize_session=False)
        )
        with _db_errors("update_password_hash"):
            result = await self.session.execute(stmt)
            if result.rowcount == 1:
                await self.session.commit()
                return CasResult.OK
            await self.session.rollback()
            exists = await self._user_exists(user_id)
        return CasResult.CONFLICT if exists else CasResult.NOT_FOUND

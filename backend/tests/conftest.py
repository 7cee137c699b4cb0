"""Pytest configuration and shared fixtures for auth tests."""

import asyncio
import os

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test config before app imports so settings/engine use it
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ARGON2_MEMORY_COST", "1024")  # keep argon2 cheap in tests
os.environ.setdefault("AUTH_RATE_LIMIT", "10000/minute")
os.environ.setdefault("MAX_CONCURRENT_HASHES", "8")

from app.api.deps import get_credential_store
from app.core.auth import hash_password
from app.core.role import Role
from app.main import app
from app.services.credential_store import (
    CasResult,
    CredentialSlot,
    LoginRecord,
    PersistenceUnavailable,
    PrincipalNotFound,
)

pytest_plugins = ["pytest_asyncio"]

TEST_EMAIL = "user@example.com"
TEST_PASSWORD = "TestP@ssw0rd123!"


class FakeCredentialStore:
    """In-memory CredentialStore with a lock-guarded CAS. Yields to the loop on every call."""

    def __init__(self):
        self.users: dict[int, dict] = {}
        self.failing: set[str] = set()
        self.forced_conflicts = 0
        self.cas_calls = 0
        self._lock = asyncio.Lock()

    def add_user(self, user_id: int, email: str, password_hash: str, role: Role = Role.USER) -> None:
        self.users[user_id] = {"email": email, "password_hash": password_hash, "role": role, "slot": None}

    def slot_of(self, user_id: int) -> CredentialSlot | None:
        return self.users[user_id]["slot"]

    async def _enter(self, operation: str) -> None:
        await asyncio.sleep(0)
        if operation in self.failing:
            raise PersistenceUnavailable(operation)

    async def get_credential_slot(self, user_id: int) -> CredentialSlot | None:
        await self._enter("get_credential_slot")
        if user_id not in self.users:
            raise PrincipalNotFound(user_id)
        return self.users[user_id]["slot"]

    async def compare_and_swap_credential_slot(
        self, user_id: int, expected_hash: str | None, new_slot: CredentialSlot
    ) -> CasResult:
        await self._enter("compare_and_swap_credential_slot")
        self.cas_calls += 1
        async with self._lock:
            if self.forced_conflicts:
                self.forced_conflicts -= 1
                return CasResult.CONFLICT
            user = self.users.get(user_id)
            if user is None:
                return CasResult.NOT_FOUND
            current = user["slot"].hash_record if user["slot"] else None
            if current != expected_hash:
                return CasResult.CONFLICT
            user["slot"] = new_slot
            return CasResult.OK

    async def replace_credential_slot(self, user_id: int, new_slot: CredentialSlot) -> None:
        await self._enter("replace_credential_slot")
        if user_id not in self.users:
            raise PrincipalNotFound(user_id)
        self.users[user_id]["slot"] = new_slot

    async def get_role(self, user_id: int) -> Role:
        await self._enter("get_role")
        if user_id not in self.users:
            raise PrincipalNotFound(user_id)
        return self.users[user_id]["role"]

    async def get_login_record(self, email: str) -> LoginRecord | None:
        await self._enter("get_login_record")
        for user_id, user in self.users.items():
            if user["email"] == email:
                return LoginRecord(user_id=user_id, password_hash=user["password_hash"])
        return None

    async def update_password_hash(self, user_id: int, expected_hash: str, new_hash: str) -> CasResult:
        await self._enter("update_password_hash")
        user = self.users.get(user_id)
        if user is None:
            return CasResult.NOT_FOUND
        if user["password_hash"] != expected_hash:
            return CasResult.CONFLICT
        user["password_hash"] = new_hash
        return CasResult.OK


@pytest.fixture
def store():
    """Store with one regular user (id 1) and one admin (id 2), no refresh slots yet."""
    s = FakeCredentialStore()
    s.add_user(1, TEST_EMAIL, hash_password(TEST_PASSWORD))
    s.add_user(2, "admin@example.com", hash_password(TEST_PASSWORD), role=Role.ADMIN)
    return s


@pytest_asyncio.fixture
async def client(store):
    """AsyncClient against the app with the credential store replaced by the in-memory one."""
    app.dependency_overrides[get_credential_store] = lambda: store
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_credential_store, None)

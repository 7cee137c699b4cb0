#!/usr/bin/env python3
"""Create the first admin account.
Usage: ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD='...' python scripts/create_admin.py"""
import asyncio
import os
import sys

from sqlalchemy import select

from app.core.auth import hash_password
from app.core.password import WeakPassword, validate_password
from app.core.role import Role
from app.db.session import async_session_maker, init_db
from app.models.user import User

ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "").strip().lower()
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "")


async def main() -> int:
    if not ADMIN_EMAIL or not ADMIN_PASSWORD:
        print("Set ADMIN_EMAIL and ADMIN_PASSWORD in environment")
        return 1
    try:
        validate_password(ADMIN_PASSWORD)
    except WeakPassword as e:
        print(f"Rejected password: {e}")
        return 1

    await init_db()
    async with async_session_maker() as session:
        r = await session.execute(select(User.id).where(User.role == Role.ADMIN))
        if r.first() is not None:
            print("An admin account already exists")
            return 1
        r = await session.execute(select(User.id).where(User.email == ADMIN_EMAIL))
        if r.first() is not None:
            print(f"Email already registered: {ADMIN_EMAIL}")
            return 1
        session.add(User(email=ADMIN_EMAIL, role=Role.ADMIN, password_hash=hash_password(ADMIN_PASSWORD)))
        await session.commit()
    print(f"Admin created: {ADMIN_EMAIL}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

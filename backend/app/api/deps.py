"""FastAPI dependencies: credential store, access token claims, role checks."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.cookies import access_cookie_name
from app.core.auth import AccessClaims, Unauthenticated, verify_access_token
from app.core.errors import ApiError, ErrorCode
from app.db.session import get_db
from app.services.credential_store import CredentialStore, SqlCredentialStore


async def get_credential_store(
    session: Annotated[AsyncSession, Depends(get_db)],
) -> CredentialStore:
    return SqlCredentialStore(session)


def _access_token_from_request(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:].strip()
    return (request.cookies.get(access_cookie_name()) or "").strip()


async def get_access_claims(request: Request) -> AccessClaims:
    """Claims of the access token from the Authorization header, else the access cookie."""
    token = _access_token_from_request(request)
    if not token:
        raise ApiError(ErrorCode.INVALID_ACCESS_TOKEN, "Not authenticated")
    try:
        return verify_access_token(token)
    except Unauthenticated:
        raise ApiError(ErrorCode.INVALID_ACCESS_TOKEN, "Invalid or expired token")

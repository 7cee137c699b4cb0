"""Auth: login, refresh (rotation), verify, me."""

import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends, Query, Request, Response
from pydantic import BaseModel

from app.api.cookies import refresh_cookie_name, set_session_cookies
from app.api.deps import get_access_claims, get_credential_store
from app.core.auth import AccessClaims
from app.core.errors import ApiError, ErrorCode
from app.core.rate_limit import AUTH_RATE_LIMIT, limiter
from app.core.role import Role, has_at_least
from app.services.credential_store import CredentialStore
from app.services.session import IssuedTokens, login, refresh_session

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


class LoginBody(BaseModel):
    email: str
    password: str


class RefreshBody(BaseModel):
    refresh_token: str | None = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int  # seconds until access token expires


class ClaimsOut(BaseModel):
    user_id: int
    role: Role


class ErrorOut(BaseModel):
    status: int
    code: str
    message: str
    error_id: str


def _token_response(response: Response, tokens: IssuedTokens) -> TokenResponse:
    set_session_cookies(response, tokens)
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login with email and password",
    responses={
        401: {"model": ErrorOut, "description": "Invalid email or password"},
        500: {"model": ErrorOut, "description": "Internal error"},
    },
)
@limiter.limit(AUTH_RATE_LIMIT)
async def login_endpoint(
    request: Request,
    response: Response,
    store: Annotated[CredentialStore, Depends(get_credential_store)],
    body: LoginBody,
) -> TokenResponse:
    tokens = await login(store, body.email, body.password)
    return _token_response(response, tokens)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Exchange refresh token for new access and refresh tokens",
    responses={
        401: {"model": ErrorOut, "description": "Refresh token missing, invalid or expired"},
        500: {"model": ErrorOut, "description": "Internal error"},
    },
)
@limiter.limit(AUTH_RATE_LIMIT)
async def refresh_endpoint(
    request: Request,
    response: Response,
    store: Annotated[CredentialStore, Depends(get_credential_store)],
    body: Annotated[RefreshBody | None, Body()] = None,
    refresh: Annotated[str | None, Query()] = None,
) -> TokenResponse:
    """Rotate: the presented refresh token is consumed and a new pair is returned.

    The token is read from the JSON body, then the ``refresh`` query parameter, then the refresh cookie.
    """
    presented = (body.refresh_token if body else None) or refresh or request.cookies.get(refresh_cookie_name())
    tokens = await refresh_session(store, presented)
    return _token_response(response, tokens)


@router.get(
    "/verify",
    status_code=204,
    summary="Check the access token and, optionally, a minimum role",
    responses={
        401: {"model": ErrorOut, "description": "Not authenticated or invalid token"},
        403: {"model": ErrorOut, "description": "Role below the requested one"},
    },
)
async def verify(
    claims: Annotated[AccessClaims, Depends(get_access_claims)],
    role: Annotated[Role, Query()] = Role.USER,
) -> Response:
    if not has_at_least(claims.role, role):
        raise ApiError(ErrorCode.INSUFFICIENT_PERMISSIONS)
    return Response(status_code=204)


@router.get(
    "/me",
    response_model=ClaimsOut,
    summary="Get current authenticated user",
    responses={401: {"model": ErrorOut, "description": "Not authenticated or invalid token"}},
)
async def me(claims: Annotated[AccessClaims, Depends(get_access_claims)]) -> ClaimsOut:
    return ClaimsOut(user_id=claims.user_id, role=claims.role)

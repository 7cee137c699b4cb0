"""Access/refresh cookie names and attributes. Production uses the __Host- prefix."""

from fastapi import Response

from app.config import settings
from app.services.session import IssuedTokens

_PROD_PREFIX = "__Host-Http-"


def access_cookie_name() -> str:
    return f"{_PROD_PREFIX}access" if settings.is_production else "access"


def refresh_cookie_name() -> str:
    return f"{_PROD_PREFIX}refresh" if settings.is_production else "refresh"


def set_session_cookies(response: Response, tokens: IssuedTokens) -> None:
    secure = settings.is_production
    response.set_cookie(
        access_cookie_name(),
        tokens.access_token,
        max_age=tokens.expires_in,
        path="/",
        secure=secure,
        httponly=True,
        samesite="lax",
    )
    response.set_cookie(
        refresh_cookie_name(),
        tokens.refresh_token,
        max_age=settings.refresh_token_expire_days * 24 * 3600,
        path="/",
        secure=secure,
        httponly=True,
        samesite="lax",
    )

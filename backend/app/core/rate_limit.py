"""
Rate limiting for the credential endpoints.

Login and refresh each cost an argon2 computation, so they are capped per client address
on top of the app-wide default.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings

limiter = Limiter(key_func=get_remote_address, default_limits=["200/minute"])

AUTH_RATE_LIMIT = settings.auth_rate_limit

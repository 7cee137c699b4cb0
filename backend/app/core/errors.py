"""Error codes exposed to API clients and the exception carrying them."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    INTERNAL_SERVER_ERROR = "internal_server_error"
    BAD_REQUEST = "bad_request"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_ACCESS_TOKEN = "invalid_access_token"
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    INSUFFICIENT_PERMISSIONS = "insufficient_permissions"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    ErrorCode.INTERNAL_SERVER_ERROR: 500,
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.INVALID_CREDENTIALS: 401,
    ErrorCode.INVALID_ACCESS_TOKEN: 401,
    ErrorCode.INVALID_REFRESH_TOKEN: 401,
    ErrorCode.INSUFFICIENT_PERMISSIONS: 403,
}

_DEFAULT_MESSAGES = {
    ErrorCode.INTERNAL_SERVER_ERROR: "Internal Server Error",
    ErrorCode.BAD_REQUEST: "Bad request",
    ErrorCode.INVALID_CREDENTIALS: "username or password is incorrect",
    ErrorCode.INVALID_ACCESS_TOKEN: "invalid access token",
    ErrorCode.INVALID_REFRESH_TOKEN: "invalid refresh token",
    ErrorCode.INSUFFICIENT_PERMISSIONS: "Insufficient Permissions",
}


class ApiError(Exception):
    """Rendered by the app as {status, code, message, error_id}."""

    def __init__(self, code: ErrorCode, message: str | None = None):
        self.code = code
        self.message = message or _DEFAULT_MESSAGES[code]
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.code.status_code

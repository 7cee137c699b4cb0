"""Correlation id of the request being handled, for log lines and error bodies."""

from __future__ import annotations

import re
import uuid
from contextvars import ContextVar

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_CLIENT_ID_RE = re.compile(r"[A-Za-z0-9._-]{1,64}")


def new_request_id() -> str:
    return uuid.uuid4().hex


def accept_request_id(header_value: str | None) -> str:
    """Client-supplied id if short and plain (letters, digits, dot, dash, underscore), else a fresh one."""
    if header_value and _CLIENT_ID_RE.fullmatch(header_value):
        return header_value
    return new_request_id()


def get_request_id() -> str:
    return request_id_var.get() or "-"


def set_request_id(value: str | None) -> None:
    request_id_var.set(value)

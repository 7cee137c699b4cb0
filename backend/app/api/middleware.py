from __future__ import annotations

from typing import Any, Callable

from fastapi import Request, Response

from app.core.request_id import accept_request_id, set_request_id

REQUEST_ID_HEADER = "x-request-id"


async def request_context_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """
    Request-scoped context:
    - Take X-Request-ID from the client when well-formed, otherwise generate one
    - Put request_id into a contextvar so log lines and error bodies carry it
    """
    rid = accept_request_id(request.headers.get(REQUEST_ID_HEADER))
    set_request_id(rid)
    try:
        resp = await call_next(request)
        resp.headers.setdefault(REQUEST_ID_HEADER, rid)
        return resp
    finally:
        set_request_id(None)

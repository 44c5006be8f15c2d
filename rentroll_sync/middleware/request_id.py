# rentroll_sync/middleware/request_id.py
from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# Upstream ids end up verbatim in JSON log lines.
_SAFE_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return request_id_ctx.get()


def resolve_request_id(incoming: Optional[str]) -> str:
    """Keep a caller-supplied id when it is safe to log, otherwise mint one."""
    rid = (incoming or "").strip()
    if rid and _SAFE_ID.match(rid):
        return rid
    return uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id: request.state, the log ContextVar and the
    response header. A solver run started over HTTP logs under this id too.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = rid

        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER] = rid
        return response

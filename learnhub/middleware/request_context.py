"""Request context middleware: request id + browser tab id for every request."""
from __future__ import annotations

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Context vars readable from anywhere during a request (loggers, clickstream routes)
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
tab_id_var: ContextVar[str] = ContextVar("tab_id", default="")

TAB_HEADER = "x-tab-id"


class ClientContextMiddleware(BaseHTTPMiddleware):
    """Attach request and tab identifiers to the request lifecycle.

    - X-Request-ID is honored when sent, otherwise a UUID4 is generated
    - X-Tab-Id identifies the browser tab owning a clickstream session
    - Both are echoed back on the response
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        tab_id = (request.headers.get(TAB_HEADER) or "")[:64]
        request_id_var.set(rid)
        tab_id_var.set(tab_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        if tab_id:
            response.headers["X-Tab-Id"] = tab_id
        return response

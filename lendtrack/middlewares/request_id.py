from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
actor_id_var: ContextVar[str | None] = ContextVar("actor_id", default=None)
logger = logging.getLogger("lendtrack.request")

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_ID_LENGTH = 128


def _incoming_id(request: Request) -> str:
    supplied = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if supplied and len(supplied) <= _MAX_ID_LENGTH:
        return supplied
    return uuid4().hex


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Correlate every API call with an id and log how it ended.

    The actor id is filled in by the auth dependency once the bearer token has
    been decoded, so anonymous calls (``/health``, token exchange) log without
    one.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _incoming_id(request)
        request.state.request_id = request_id
        id_token = request_id_var.set(request_id)
        actor_token = actor_id_var.set(None)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request.failed",
                extra={"extra_data": {"method": request.method, "path": request.url.path}},
            )
            raise
        finally:
            request_id_var.reset(id_token)
            actor_id_var.reset(actor_token)

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = request_id
        fields = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
        }
        actor = getattr(request.state, "principal", None)
        if actor:
            fields["principal"] = actor
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, "request.completed", extra={"extra_data": fields})
        return response

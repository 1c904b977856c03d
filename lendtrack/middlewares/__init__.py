from __future__ import annotations

from .request_id import REQUEST_ID_HEADER, RequestIdMiddleware, actor_id_var, request_id_var

__all__ = [
    "REQUEST_ID_HEADER",
    "RequestIdMiddleware",
    "actor_id_var",
    "request_id_var",
]

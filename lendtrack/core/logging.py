from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from ..middlewares import actor_id_var, request_id_var

# uvicorn's own access log duplicates ``request.completed``.
_QUIET_LOGGERS = ("uvicorn.access",)
_ROUTED_LOGGERS = ("uvicorn", "uvicorn.error")


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, tagged with the service, request and actor."""

    def __init__(self, service: Optional[str] = None, backend: Optional[str] = None) -> None:
        super().__init__()
        self.service = service
        self.backend = backend

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.service:
            payload["service"] = self.service
        if self.backend:
            payload["store_backend"] = self.backend
        for key, var in (("request_id", request_id_var), ("principal", actor_id_var)):
            value = var.get()
            if value:
                payload[key] = value
        extra = getattr(record, "extra_data", None)
        if isinstance(extra, Mapping):
            # Event fields never overwrite the envelope keys above.
            for key, value in extra.items():
                payload.setdefault(key, value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=str)


def configure_logging(
    level: str | int = logging.INFO,
    *,
    service: Optional[str] = None,
    backend: Optional[str] = None,
) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter(service=service, backend=backend))
    logging.root.handlers = [handler]
    logging.root.setLevel(level)
    for name in _ROUTED_LOGGERS:
        routed = logging.getLogger(name)
        routed.handlers = []
        routed.propagate = True
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

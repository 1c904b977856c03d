from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException


class LendingError(Exception):
    """Base class for every failure the lending core reports to callers.

    ``code`` is the stable, machine readable kind. Presentation layers map it
    to a localized message; ``message`` is only a developer-facing hint.
    """

    code = "lending_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFound(LendingError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(LendingError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class Forbidden(LendingError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class InputValidationError(LendingError):
    code = "validation_error"
    status_code = 422


class StoreTimeout(LendingError):
    code = "timeout"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class StoreUnavailable(LendingError):
    code = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


async def lending_error_handler(request: Request, exc: LendingError):
    return ErrorEnvelope(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc):  # type: ignore[override]
    from fastapi.exceptions import RequestValidationError
    from fastapi.encoders import jsonable_encoder

    if isinstance(exc, RequestValidationError):
        return ErrorEnvelope(
            status_code=422,
            code="validation_error",
            message="Validation failed",
            details={"errors": jsonable_encoder(exc.errors())},
        )
    raise exc

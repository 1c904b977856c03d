"""Application wiring for the device lending API.

Configuration, logging, middleware, routers and error handlers come together
here. ``create_app`` is called once at import time to build ``app`` for
``uvicorn lendtrack.main:app``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import AppSettings, settings as default_settings
from .core.errors import (
    LendingError,
    http_exception_handler,
    lending_error_handler,
    validation_exception_handler,
)
from .core.logging import configure_logging
from .middlewares import RequestIdMiddleware
from .routers import api_auth, api_devices, api_history


def create_app(settings: AppSettings = default_settings) -> FastAPI:
    configure_logging(
        settings.LOG_LEVEL.upper(),
        service=settings.APP_NAME,
        backend=settings.STORE_BACKEND,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.STORE_BACKEND == "sql":
            # Importing the models registers their tables on ``Base.metadata``.
            from . import models  # noqa: F401
            from .db.session import Base, engine

            Base.metadata.create_all(bind=engine)
        yield

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

    app.add_middleware(RequestIdMiddleware)
    if settings.ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(api_auth.router)
    app.include_router(api_devices.router)
    app.include_router(api_history.router)

    app.add_exception_handler(LendingError, lending_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    @app.get("/health")
    async def health() -> dict[str, object]:
        return {"ok": True, "backend": settings.STORE_BACKEND}

    Instrumentator().instrument(app).expose(app, include_in_schema=False)
    return app


app = create_app()

__all__ = ["app", "create_app"]

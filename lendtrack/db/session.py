"""SQLAlchemy engine and session helpers for the relational backend."""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from ..core.config import settings


def engine_options(url: str, timeout: float) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # ``check_same_thread=False`` lets FastAPI worker threads share the
        # connection; ``timeout`` bounds how long a writer waits on a lock.
        return {"connect_args": {"check_same_thread": False, "timeout": timeout}}
    return {"pool_pre_ping": True, "pool_timeout": timeout}


engine = create_engine(settings.DB_URL, **engine_options(settings.DB_URL, settings.STORE_TIMEOUT_SECONDS))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
Base = declarative_base()


def get_db():
    """FastAPI dependency that yields a session and guarantees cleanup."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

"""Backend selection.

``STORE_BACKEND`` picks the implementation once, from configuration. There is
no runtime fallback from one backend to the other.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Optional

from sqlalchemy.orm import Session

from ..core.config import AppSettings, settings as default_settings
from ..core.errors import StoreUnavailable
from .base import DeviceStore, RentalHistoryStore
from .sql import SqlDeviceStore, SqlRentalHistoryStore

if TYPE_CHECKING:
    from google.cloud import firestore


@lru_cache(maxsize=1)
def get_firestore_client() -> "firestore.Client":
    from google.auth.exceptions import DefaultCredentialsError
    from google.cloud import firestore

    kwargs = {}
    if default_settings.FIRESTORE_PROJECT:
        kwargs["project"] = default_settings.FIRESTORE_PROJECT
    if default_settings.FIRESTORE_DATABASE:
        kwargs["database"] = default_settings.FIRESTORE_DATABASE
    try:
        return firestore.Client(**kwargs)
    except DefaultCredentialsError as exc:
        raise StoreUnavailable("Firestore credentials are not configured") from exc


def build_stores(
    db: Optional[Session] = None,
    settings: AppSettings = default_settings,
) -> tuple[DeviceStore, RentalHistoryStore]:
    if settings.STORE_BACKEND == "firestore":
        from .firestore import FirestoreDeviceStore, FirestoreRentalHistoryStore

        client = get_firestore_client()
        timeout = settings.STORE_TIMEOUT_SECONDS
        return (
            FirestoreDeviceStore(client, timeout=timeout),
            FirestoreRentalHistoryStore(client, timeout=timeout),
        )
    if db is None:
        raise ValueError("the sql backend needs a database session")
    return SqlDeviceStore(db), SqlRentalHistoryStore(db)


__all__ = ["DeviceStore", "RentalHistoryStore", "build_stores", "get_firestore_client"]

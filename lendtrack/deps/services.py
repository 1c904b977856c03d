from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from ..core.config import settings
from ..db.session import get_db
from ..services.history import RentalHistoryLog
from ..services.lifecycle import DeviceLifecycleService
from ..stores import build_stores


def get_history_log(db: Session = Depends(get_db)) -> RentalHistoryLog:
    _, history_store = build_stores(db)
    return RentalHistoryLog(history_store, retention=settings.HISTORY_RETENTION)


def get_lifecycle_service(db: Session = Depends(get_db)) -> DeviceLifecycleService:
    device_store, history_store = build_stores(db)
    history = RentalHistoryLog(history_store, retention=settings.HISTORY_RETENTION)
    return DeviceLifecycleService(device_store, history)

"""Rental history: an append-only audit trail with a retention cap."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..core.clock import utcnow
from ..core.errors import NotFound
from ..schemas.auth import Actor
from ..schemas.device import Device
from ..schemas.rental_history import RentalHistoryRecord, RentalStatus
from ..stores.base import RentalHistoryStore

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = 100


class RentalHistoryLog:
    def __init__(self, store: RentalHistoryStore, *, retention: int = DEFAULT_RETENTION) -> None:
        self.store = store
        self.retention = retention

    def record_borrow(self, device: Device, actor: Actor, borrowed_at: datetime) -> RentalHistoryRecord:
        """Open a history entry snapshotting the device and borrower as they are now."""

        return self.store.append(
            {
                "device_id": device.id,
                "device_name": device.display_name,
                "manufacturer": device.manufacturer,
                "os_name": device.os_name,
                "os_version": device.os_version,
                "user_id": actor.id,
                "user_name": actor.display_name,
                "borrowed_at": borrowed_at,
                "returned_at": None,
                "status": RentalStatus.BORROWED,
                "created_at": utcnow(),
            }
        )

    def record_return(self, device_id: str, returned_at: datetime) -> Optional[RentalHistoryRecord]:
        """Close the newest open entry for ``device_id``; ``None`` if there is none."""

        record = self.store.find_open(device_id)
        if record is None:
            return None
        return self.store.update(
            record.id,
            {"returned_at": returned_at, "status": RentalStatus.RETURNED},
        )

    def list_recent(self, limit: int = DEFAULT_RETENTION) -> list[RentalHistoryRecord]:
        if limit <= 0:
            return []
        return self.store.list_all("borrowed_at", descending=True, limit=limit)

    def prune(self, max_records: Optional[int] = None) -> int:
        """Delete the oldest entries beyond ``max_records``. Returns how many went."""

        cap = self.retention if max_records is None else max_records
        excess = self.store.count() - cap
        if excess <= 0:
            return 0
        removed = 0
        for record in self.store.list_all("created_at", descending=False, limit=excess):
            if self.store.delete(record.id):
                removed += 1
        logger.info(
            "history.pruned",
            extra={"extra_data": {"removed": removed, "retention": cap}},
        )
        return removed

    def prune_quietly(self) -> None:
        try:
            self.prune()
        except Exception:
            logger.exception("history.prune_failed", extra={"extra_data": {"retention": self.retention}})

    def delete_record(self, record_id: str) -> None:
        if not self.store.delete(record_id):
            raise NotFound("rental history record not found", details={"id": record_id})
        logger.info("history.deleted", extra={"extra_data": {"record_id": record_id}})

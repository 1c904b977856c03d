"""Storage contracts shared by the SQL and Firestore backends.

The lifecycle service only ever talks to these two interfaces. Every method
may raise :class:`~lendtrack.core.errors.StoreTimeout` or
:class:`~lendtrack.core.errors.StoreUnavailable`; "missing" is reported with
``None``/``False`` rather than an exception so the service decides what is an
error.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from ..schemas.device import Device, DeviceStatus
from ..schemas.rental_history import RentalHistoryRecord

HISTORY_ORDER_FIELDS = ("created_at", "borrowed_at")


class DeviceStore(ABC):
    @abstractmethod
    def get(self, device_id: str) -> Optional[Device]:
        ...

    @abstractmethod
    def get_by_uuid(self, uuid: str) -> Optional[Device]:
        ...

    @abstractmethod
    def create(self, fields: Mapping[str, Any]) -> Device:
        ...

    @abstractmethod
    def update(self, device_id: str, fields: Mapping[str, Any]) -> Optional[Device]:
        """Apply ``fields`` unconditionally. Returns ``None`` if the device is gone."""

    @abstractmethod
    def transition(
        self,
        device_id: str,
        expected_status: DeviceStatus,
        fields: Mapping[str, Any],
    ) -> Optional[Device]:
        """Apply ``fields`` only while the stored status is ``expected_status``.

        Returns the updated device, or ``None`` when the device is missing or
        another writer changed its status first.
        """

    @abstractmethod
    def delete(self, device_id: str, expected_status: Optional[DeviceStatus] = None) -> bool:
        ...

    @abstractmethod
    def list_all(self) -> list[Device]:
        ...

    @abstractmethod
    def list_by_status(self, status: DeviceStatus) -> list[Device]:
        ...

    @abstractmethod
    def list_by_user(self, user_id: str) -> list[Device]:
        ...

    @abstractmethod
    def next_asset_number(self, prefix: str) -> int:
        """Reserve and return the next sequence number for an asset-tag prefix."""


class RentalHistoryStore(ABC):
    @abstractmethod
    def append(self, fields: Mapping[str, Any]) -> RentalHistoryRecord:
        ...

    @abstractmethod
    def get(self, record_id: str) -> Optional[RentalHistoryRecord]:
        ...

    @abstractmethod
    def update(self, record_id: str, fields: Mapping[str, Any]) -> Optional[RentalHistoryRecord]:
        ...

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        ...

    @abstractmethod
    def list_all(
        self,
        order_by: str = "created_at",
        *,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[RentalHistoryRecord]:
        ...

    @abstractmethod
    def find_open(self, device_id: str) -> Optional[RentalHistoryRecord]:
        """Most recent ``borrowed`` record for ``device_id``."""

    @abstractmethod
    def count(self) -> int:
        ...


def check_order_field(order_by: str) -> str:
    if order_by not in HISTORY_ORDER_FIELDS:
        raise ValueError(f"cannot order rental history by {order_by!r}")
    return order_by

"""Cloud Firestore backend.

Documents keep the camelCase field names and collection names the mobile app
already writes (``devices``, ``rentalHistory``, ``deviceIdCounters``), so both
clients can share one project. Older app builds logged one ``rentalHistory``
event per borrow or return (``action`` + ``timestamp``); those documents are
listed and pruned like any other record but never closed by a return.
Queries filter on a single field and sort in Python, which keeps the project
free of composite indexes.
"""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator, Mapping, Optional

from google.api_core import exceptions as google_exceptions
from google.api_core.retry import Retry, if_transient_error
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from ..core.clock import as_utc, utcnow
from ..core.errors import StoreTimeout, StoreUnavailable
from ..schemas.device import Device, DeviceStatus
from ..schemas.rental_history import RentalHistoryRecord, RentalStatus
from .base import DeviceStore, RentalHistoryStore, check_order_field

DEVICES_COLLECTION = "devices"
RENTAL_HISTORY_COLLECTION = "rentalHistory"
COUNTERS_COLLECTION = "deviceIdCounters"

DEVICE_FIELDS = {
    "asset_tag": "deviceId",
    "model_name": "modelName",
    "internal_model_id": "internalModelId",
    "os_name": "osName",
    "os_version": "osVersion",
    "manufacturer": "manufacturer",
    "screen_size": "screenSize",
    "physical_memory": "physicalMemory",
    "uuid": "uuid",
    "memo": "memo",
    "status": "status",
    "current_user_id": "currentUserId",
    "current_user_name": "currentUserName",
    "borrowed_at": "borrowedAt",
    "registered_by": "registeredBy",
    "registered_at": "registeredAt",
    "updated_at": "updatedAt",
}

HISTORY_FIELDS = {
    "device_id": "deviceId",
    "device_name": "deviceName",
    "manufacturer": "manufacturer",
    "os_name": "osName",
    "os_version": "osVersion",
    "user_id": "userId",
    "user_name": "userName",
    "borrowed_at": "borrowedAt",
    "returned_at": "returnedAt",
    "status": "status",
    "created_at": "createdAt",
}


def _to_document(fields: Mapping[str, Any], mapping: Mapping[str, str]) -> dict[str, Any]:
    doc: dict[str, Any] = {}
    for key, value in fields.items():
        if key not in mapping:
            raise KeyError(f"unknown field {key!r}")
        doc[mapping[key]] = value.value if isinstance(value, Enum) else value
    return doc


def _from_document(doc_id: str, data: Mapping[str, Any], mapping: Mapping[str, str]) -> dict[str, Any]:
    payload: dict[str, Any] = {"id": doc_id}
    for attr, name in mapping.items():
        if name in data:
            payload[attr] = data[name]
    return payload


def _sort_key(value: Any) -> str:
    # Timestamps may be missing on documents written by older clients.
    value = as_utc(value)
    return value.isoformat() if value else ""


def call_options(timeout: float) -> dict[str, Any]:
    """Per-call ``retry``/``timeout`` kwargs bounding the whole call to ``timeout``.

    The client's default retry keeps resending transient failures for minutes;
    this one gives up once ``timeout`` seconds have passed in total.
    """

    return {
        "retry": Retry(predicate=if_transient_error, initial=0.1, maximum=1.0, timeout=timeout),
        "timeout": timeout,
    }


def _legacy_record(data: Mapping[str, Any]) -> dict[str, Any]:
    # One event per borrow or return, as logged by older app builds.
    happened = data.get("timestamp") or data.get("createdAt")
    returned = data.get("action") == "return"
    return {
        "borrowedAt": happened,
        "returnedAt": happened if returned else None,
        "status": (RentalStatus.RETURNED if returned else RentalStatus.BORROWED).value,
    }


@contextmanager
def _store_errors() -> Iterator[None]:
    try:
        yield
    except (google_exceptions.DeadlineExceeded, google_exceptions.RetryError) as exc:
        raise StoreTimeout("Firestore did not respond in time") from exc
    except google_exceptions.GoogleAPICallError as exc:
        raise StoreUnavailable("Firestore is unavailable", details={"reason": type(exc).__name__}) from exc


class FirestoreDeviceStore(DeviceStore):
    def __init__(self, client: firestore.Client, *, timeout: float = 5.0) -> None:
        self.client = client
        self.timeout = timeout
        self._options = call_options(timeout)
        self._collection = client.collection(DEVICES_COLLECTION)

    def _device(self, snapshot) -> Device:
        return Device.model_validate(_from_document(snapshot.id, snapshot.to_dict() or {}, DEVICE_FIELDS))

    def _snapshot(self, device_id: str):
        if not device_id:
            return None
        snapshot = self._collection.document(str(device_id)).get(**self._options)
        return snapshot if snapshot.exists else None

    def get(self, device_id: str) -> Optional[Device]:
        with _store_errors():
            snapshot = self._snapshot(device_id)
        return self._device(snapshot) if snapshot else None

    def _query(self, field: str, value: Any) -> list[Device]:
        query = self._collection.where(filter=FieldFilter(field, "==", value))
        with _store_errors():
            return [self._device(snapshot) for snapshot in query.stream(**self._options)]

    def get_by_uuid(self, uuid: str) -> Optional[Device]:
        matches = self._query("uuid", uuid)
        return matches[0] if matches else None

    def create(self, fields: Mapping[str, Any]) -> Device:
        with _store_errors():
            _, ref = self._collection.add(_to_document(fields, DEVICE_FIELDS), **self._options)
            snapshot = ref.get(**self._options)
        return self._device(snapshot)

    def update(self, device_id: str, fields: Mapping[str, Any]) -> Optional[Device]:
        with _store_errors():
            snapshot = self._snapshot(device_id)
            if snapshot is None:
                return None
            try:
                snapshot.reference.update(_to_document(fields, DEVICE_FIELDS), **self._options)
            except google_exceptions.NotFound:
                return None
        return self.get(device_id)

    def transition(
        self,
        device_id: str,
        expected_status: DeviceStatus,
        fields: Mapping[str, Any],
    ) -> Optional[Device]:
        with _store_errors():
            snapshot = self._snapshot(device_id)
            if snapshot is None or (snapshot.to_dict() or {}).get("status") != expected_status.value:
                return None
            # The write only lands if nobody touched the document since we read it.
            option = self.client.write_option(last_update_time=snapshot.update_time)
            try:
                snapshot.reference.update(
                    _to_document(fields, DEVICE_FIELDS),
                    option=option,
                    **self._options,
                )
            except (google_exceptions.FailedPrecondition, google_exceptions.NotFound):
                return None
        return self.get(device_id)

    def delete(self, device_id: str, expected_status: Optional[DeviceStatus] = None) -> bool:
        with _store_errors():
            snapshot = self._snapshot(device_id)
            if snapshot is None:
                return False
            option = None
            if expected_status is not None:
                if (snapshot.to_dict() or {}).get("status") != expected_status.value:
                    return False
                option = self.client.write_option(last_update_time=snapshot.update_time)
            try:
                snapshot.reference.delete(option=option, **self._options)
            except google_exceptions.FailedPrecondition:
                return False
        return True

    def list_all(self) -> list[Device]:
        with _store_errors():
            devices = [self._device(s) for s in self._collection.stream(**self._options)]
        return sorted(devices, key=lambda d: _sort_key(d.updated_at), reverse=True)

    def list_by_status(self, status: DeviceStatus) -> list[Device]:
        devices = self._query("status", status.value)
        return sorted(devices, key=lambda d: _sort_key(d.updated_at), reverse=True)

    def list_by_user(self, user_id: str) -> list[Device]:
        devices = self._query("currentUserId", str(user_id))
        return sorted(devices, key=lambda d: _sort_key(d.borrowed_at), reverse=True)

    def next_asset_number(self, prefix: str) -> int:
        ref = self.client.collection(COUNTERS_COLLECTION).document(f"{prefix}_counter")
        options = self._options

        @firestore.transactional
        def _increment(transaction, counter_ref) -> int:
            snapshot = counter_ref.get(transaction=transaction, **options)
            current = (snapshot.to_dict() or {}).get("value", 0) if snapshot.exists else 0
            value = int(current or 0) + 1
            transaction.set(counter_ref, {"value": value, "prefix": prefix, "updatedAt": utcnow()}, merge=True)
            return value

        with _store_errors():
            return _increment(self.client.transaction(), ref)


class FirestoreRentalHistoryStore(RentalHistoryStore):
    def __init__(self, client: firestore.Client, *, timeout: float = 5.0) -> None:
        self.client = client
        self.timeout = timeout
        self._options = call_options(timeout)
        self._collection = client.collection(RENTAL_HISTORY_COLLECTION)

    def _record(self, snapshot) -> RentalHistoryRecord:
        raw = snapshot.to_dict() or {}
        if "status" not in raw and "action" in raw:
            raw = {**raw, **_legacy_record(raw)}
        data = _from_document(snapshot.id, raw, HISTORY_FIELDS)
        for key in ("device_id", "device_name", "user_id", "user_name"):
            if data.get(key) is None:
                data[key] = ""
        data.setdefault("created_at", data.get("borrowed_at"))
        return RentalHistoryRecord.model_validate(data)

    def append(self, fields: Mapping[str, Any]) -> RentalHistoryRecord:
        with _store_errors():
            _, ref = self._collection.add(_to_document(fields, HISTORY_FIELDS), **self._options)
            snapshot = ref.get(**self._options)
        return self._record(snapshot)

    def get(self, record_id: str) -> Optional[RentalHistoryRecord]:
        if not record_id:
            return None
        with _store_errors():
            snapshot = self._collection.document(str(record_id)).get(**self._options)
        return self._record(snapshot) if snapshot.exists else None

    def update(self, record_id: str, fields: Mapping[str, Any]) -> Optional[RentalHistoryRecord]:
        ref = self._collection.document(str(record_id))
        with _store_errors():
            try:
                ref.update(_to_document(fields, HISTORY_FIELDS), **self._options)
            except google_exceptions.NotFound:
                return None
        return self.get(record_id)

    def delete(self, record_id: str) -> bool:
        with _store_errors():
            snapshot = self._collection.document(str(record_id)).get(**self._options)
            if not snapshot.exists:
                return False
            snapshot.reference.delete(**self._options)
        return True

    def list_all(
        self,
        order_by: str = "created_at",
        *,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[RentalHistoryRecord]:
        field = HISTORY_FIELDS[check_order_field(order_by)]
        direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
        query = self._collection.order_by(field, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        with _store_errors():
            return [self._record(snapshot) for snapshot in query.stream(**self._options)]

    def find_open(self, device_id: str) -> Optional[RentalHistoryRecord]:
        query = self._collection.where(filter=FieldFilter("deviceId", "==", str(device_id)))
        with _store_errors():
            records = [
                self._record(snapshot)
                for snapshot in query.stream(**self._options)
                if "status" in (snapshot.to_dict() or {})
            ]
        open_records = [r for r in records if r.status == RentalStatus.BORROWED]
        if not open_records:
            return None
        return max(open_records, key=lambda r: _sort_key(r.borrowed_at))

    def count(self) -> int:
        with _store_errors():
            results = self._collection.count().get(**self._options)
        return int(results[0][0].value)

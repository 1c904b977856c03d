"""Firestore backend, exercised against an in-memory stand-in for the client."""

import itertools
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
from google.api_core import exceptions as google_exceptions
from google.api_core.retry import Retry

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DB_URL", "sqlite://")

from lendtrack.core.errors import Conflict, StoreTimeout, StoreUnavailable
from lendtrack.schemas.auth import Actor
from lendtrack.schemas.device import DeviceStatus
from lendtrack.schemas.rental_history import RentalStatus
from lendtrack.services.history import RentalHistoryLog
from lendtrack.services.lifecycle import DeviceLifecycleService
from lendtrack.stores.firestore import FirestoreDeviceStore, FirestoreRentalHistoryStore

ALICE = Actor(id="uid-alice", display_name="Alice")
ADMIN = Actor(id="uid-admin", display_name="Admin", role="admin")


class FakeSnapshot:
    def __init__(self, reference, data, update_time):
        self.reference = reference
        self.id = reference.id
        self._data = data
        self.update_time = update_time

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeDocument:
    def __init__(self, collection, doc_id):
        self.collection = collection
        self.id = doc_id

    def get(self, transaction=None, retry=None, timeout=None):
        self.collection.client.retries.append(retry)
        self.collection.client.check_outage()
        data = self.collection.docs.get(self.id)
        return FakeSnapshot(
            self,
            dict(data) if data is not None else None,
            self.collection.times.get(self.id),
        )

    def _check(self, option):
        if self.id not in self.collection.docs:
            raise google_exceptions.NotFound("no document")
        if option is not None and option.last_update_time != self.collection.times[self.id]:
            raise google_exceptions.FailedPrecondition("document changed")

    def update(self, fields, option=None, retry=None, timeout=None):
        self._check(option)
        self.collection.docs[self.id].update(fields)
        self.collection.times[self.id] = self.collection.client.tick()

    def delete(self, option=None, retry=None, timeout=None):
        self._check(option)
        del self.collection.docs[self.id]
        del self.collection.times[self.id]


class FakeQuery:
    def __init__(self, collection, filters=(), order=None, limit=None):
        self.collection = collection
        self.filters = filters
        self.order = order
        self._limit = limit

    def where(self, filter):
        return FakeQuery(self.collection, self.filters + (filter,), self.order, self._limit)

    def order_by(self, field, direction="ASCENDING"):
        return FakeQuery(self.collection, self.filters, (field, direction), self._limit)

    def limit(self, count):
        return FakeQuery(self.collection, self.filters, self.order, count)

    def _matches(self):
        items = list(self.collection.docs.items())
        for f in self.filters:
            assert f.op_string == "=="
            items = [(i, d) for i, d in items if d.get(f.field_path) == f.value]
        if self.order:
            field, direction = self.order
            items = [(i, d) for i, d in items if d.get(field) is not None]
            items.sort(key=lambda item: item[1][field], reverse=direction == "DESCENDING")
        if self._limit is not None:
            items = items[: self._limit]
        return items

    def stream(self, retry=None, timeout=None):
        self.collection.client.check_outage()
        for doc_id, _ in self._matches():
            yield self.collection.document(doc_id).get()

    def count(self):
        matches = self._matches()
        return SimpleNamespace(get=lambda retry=None, timeout=None: [[SimpleNamespace(value=len(matches))]])


class FakeCollection(FakeQuery):
    def __init__(self, client):
        super().__init__(self)
        self.client = client
        self.docs = {}
        self.times = {}
        self._ids = itertools.count(1)

    def document(self, doc_id):
        return FakeDocument(self, doc_id)

    def add(self, data, retry=None, timeout=None):
        self.client.check_outage()
        doc_id = f"doc{next(self._ids)}"
        self.docs[doc_id] = dict(data)
        self.times[doc_id] = self.client.tick()
        return self.times[doc_id], self.document(doc_id)


class FakeFirestoreClient:
    def __init__(self):
        self.collections = {}
        self.outage = None
        self.retries = []
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def tick(self):
        self._clock += timedelta(microseconds=1)
        return self._clock

    def check_outage(self):
        if self.outage is not None:
            raise self.outage

    def collection(self, name):
        return self.collections.setdefault(name, FakeCollection(self))

    def write_option(self, last_update_time):
        return SimpleNamespace(last_update_time=last_update_time)


@pytest.fixture()
def client():
    return FakeFirestoreClient()


@pytest.fixture()
def device_store(client, monkeypatch):
    store = FirestoreDeviceStore(client)
    counters = {}

    def next_asset_number(prefix):
        counters[prefix] = counters.get(prefix, 0) + 1
        return counters[prefix]

    # Transactions need a live backend; the counter logic is a plain increment.
    monkeypatch.setattr(store, "next_asset_number", next_asset_number)
    return store


@pytest.fixture()
def service(client, device_store):
    return DeviceLifecycleService(device_store, RentalHistoryLog(FirestoreRentalHistoryStore(client)))


def test_documents_use_camel_case_fields(client, service):
    device = service.register_device(
        {"model_name": "iPhone 15", "os_name": "iOS", "os_version": "17.2", "uuid": "ABC-123"},
        ADMIN,
    )

    stored = client.collection("devices").docs[device.id]
    assert stored["modelName"] == "iPhone 15"
    assert stored["status"] == "available"
    assert stored["deviceId"] == "I00001"
    assert stored["registeredBy"] == "uid-admin"


def test_round_trip_on_firestore(client, service):
    device = service.register_device({"model_name": "Pixel 8", "os_name": "Android", "os_version": "14"}, ADMIN)

    borrowed = service.borrow(device.id, ALICE)
    assert borrowed.status == DeviceStatus.IN_USE
    assert borrowed.current_user_id == "uid-alice"
    assert service.list_devices_for_user("uid-alice")[0].id == device.id

    returned = service.return_device(device.id, ALICE)
    assert returned.status == DeviceStatus.AVAILABLE
    assert returned.borrowed_at is None

    records = service.history.list_recent()
    assert len(records) == 1
    assert records[0].status == RentalStatus.RETURNED
    assert records[0].returned_at is not None
    assert client.collection("rentalHistory").docs[records[0].id]["status"] == "returned"


def test_duplicate_uuid_on_firestore(service):
    form = {"model_name": "iPhone 15", "os_name": "iOS", "os_version": "17.2", "uuid": "ABC-123"}
    service.register_device(form, ADMIN)

    with pytest.raises(Conflict):
        service.register_device(form, ADMIN)


def test_transition_loses_to_concurrent_writer(client, device_store, service):
    device = service.register_device({"model_name": "Pixel 8", "os_name": "Android", "os_version": "14"}, ADMIN)
    original_snapshot = device_store._snapshot
    calls = []

    def snapshot_then_race(device_id):
        snapshot = original_snapshot(device_id)
        calls.append(device_id)
        if len(calls) == 2:
            # Another client borrows the device between the conditional
            # write's read and its update.
            snapshot.reference.update({"status": "in_use", "currentUserId": "someone-else"})
        return snapshot

    device_store._snapshot = snapshot_then_race

    with pytest.raises(Conflict):
        service.borrow(device.id, ALICE)

    stored = client.collection("devices").docs[device.id]
    assert stored["currentUserId"] == "someone-else"
    assert service.history.list_recent() == []


def test_history_count_and_prune(client):
    store = FirestoreRentalHistoryStore(client)
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    for n in range(6):
        store.append(
            {
                "device_id": "d1",
                "device_name": f"Device {n}",
                "user_id": "u1",
                "user_name": "Alice",
                "borrowed_at": base + timedelta(minutes=n),
                "status": RentalStatus.BORROWED,
                "created_at": base + timedelta(minutes=n),
            }
        )

    log = RentalHistoryLog(store, retention=4)
    assert log.prune() == 2
    assert store.count() == 4
    assert [r.device_name for r in log.list_recent()] == ["Device 5", "Device 4", "Device 3", "Device 2"]
    assert store.find_open("d1").device_name == "Device 5"


def test_deadline_exceeded_maps_to_timeout(client, device_store):
    client.outage = google_exceptions.DeadlineExceeded("slow")

    with pytest.raises(StoreTimeout):
        device_store.get("doc1")
    with pytest.raises(StoreTimeout):
        device_store.list_all()


def test_calls_carry_a_bounded_retry(client, device_store):
    client.retries.clear()

    device_store.get("doc1")

    assert len(client.retries) == 1
    assert isinstance(client.retries[0], Retry)


def test_exhausted_retry_maps_to_timeout(client, device_store):
    client.outage = google_exceptions.RetryError(
        "Timeout of 5.0s exceeded",
        google_exceptions.DeadlineExceeded("slow"),
    )

    with pytest.raises(StoreTimeout):
        device_store.get("doc1")
    with pytest.raises(StoreTimeout):
        FirestoreRentalHistoryStore(client).list_all()


@pytest.mark.parametrize(
    "error",
    [
        google_exceptions.PermissionDenied("rules rejected the read"),
        google_exceptions.ServiceUnavailable("backend down"),
        google_exceptions.InternalServerError("boom"),
    ],
)
def test_other_api_failures_map_to_unavailable(client, device_store, error):
    client.outage = error

    with pytest.raises(StoreUnavailable):
        device_store.list_all()


def _put_legacy_event(client, doc_id, device_id, action, when):
    history = client.collection("rentalHistory")
    history.docs[doc_id] = {
        "deviceId": device_id,
        "deviceName": "Old phone",
        "userId": "u-legacy",
        "userName": "Legacy User",
        "action": action,
        "timestamp": when,
        "createdAt": when,
    }
    history.times[doc_id] = client.tick()


def test_legacy_event_documents_are_read_pruned_and_left_open(client, service):
    device = service.register_device({"model_name": "Pixel 8", "os_name": "Android", "os_version": "14"}, ADMIN)
    base = datetime(2023, 1, 1, tzinfo=timezone.utc)
    _put_legacy_event(client, "legacy-borrow", device.id, "borrow", base)
    _put_legacy_event(client, "legacy-return", device.id, "return", base + timedelta(hours=1))
    store = FirestoreRentalHistoryStore(client)

    records = {r.id: r for r in store.list_all()}
    assert records["legacy-borrow"].status == RentalStatus.BORROWED
    assert records["legacy-borrow"].returned_at is None
    assert records["legacy-return"].status == RentalStatus.RETURNED
    assert records["legacy-return"].returned_at == base + timedelta(hours=1)
    assert store.find_open(device.id) is None

    service.borrow(device.id, ALICE)
    service.return_device(device.id, ALICE)

    legacy = client.collection("rentalHistory").docs["legacy-borrow"]
    assert "status" not in legacy and "returnedAt" not in legacy
    native = [r for r in store.list_all() if not r.id.startswith("legacy")]
    assert [r.status for r in native] == [RentalStatus.RETURNED]

    assert RentalHistoryLog(store, retention=1).prune() == 2
    assert set(client.collection("rentalHistory").docs) == {native[0].id}

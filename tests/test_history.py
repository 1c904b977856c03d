"""Rental history ordering, retention pruning and admin deletes."""

import os
import sys
from datetime import timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DB_URL", "sqlite://")

from lendtrack.core.clock import utcnow
from lendtrack.core.errors import NotFound
from lendtrack.db.session import Base
from lendtrack.schemas.auth import Actor
from lendtrack.schemas.device import DeviceStatus
from lendtrack.services.history import RentalHistoryLog
from lendtrack.services.lifecycle import DeviceLifecycleService
from lendtrack.stores.sql import SqlDeviceStore, SqlRentalHistoryStore

from lendtrack import models  # noqa: F401

ALICE = Actor(id="42", display_name="Alice")
ADMIN = Actor(id="1", display_name="Admin", role="admin")


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store(db_session):
    return SqlRentalHistoryStore(db_session)


def _append(store, n, *, user="Alice", borrowed_at=None):
    when = borrowed_at or utcnow()
    return store.append(
        {
            "device_id": "1",
            "device_name": f"Device {n}",
            "user_id": "42",
            "user_name": user,
            "borrowed_at": when,
            "status": "borrowed",
            "created_at": utcnow(),
        }
    )


def test_list_recent_is_newest_first_and_limited(store):
    base = utcnow()
    for offset in (2, 0, 1):
        _append(store, offset, borrowed_at=base + timedelta(minutes=offset))

    log = RentalHistoryLog(store)

    assert [r.device_name for r in log.list_recent()] == ["Device 2", "Device 1", "Device 0"]
    assert [r.device_name for r in log.list_recent(limit=2)] == ["Device 2", "Device 1"]
    assert log.list_recent(limit=0) == []


def test_prune_removes_oldest_records_first(store):
    created = [_append(store, n) for n in range(8)]
    log = RentalHistoryLog(store, retention=5)

    removed = log.prune()

    assert removed == 3
    assert store.count() == 5
    remaining = {r.id for r in store.list_all()}
    assert remaining == {r.id for r in created[3:]}


def test_prune_below_cap_is_a_no_op(store):
    for n in range(3):
        _append(store, n)

    assert RentalHistoryLog(store).prune(max_records=3) == 0
    assert store.count() == 3


def test_borrow_keeps_history_within_retention_cap(db_session):
    log = RentalHistoryLog(SqlRentalHistoryStore(db_session))
    service = DeviceLifecycleService(SqlDeviceStore(db_session), log)
    device = service.register_device(
        {"model_name": "Pixel 8", "os_name": "Android", "os_version": "14"},
        ADMIN,
    )

    for _ in range(103):
        service.borrow(device.id, ALICE)
        service.return_device(device.id, ALICE)
        assert log.store.count() <= 100

    assert log.store.count() == 100
    assert len(log.list_recent()) == 100


def test_prune_failure_does_not_fail_borrow(db_session, monkeypatch):
    log = RentalHistoryLog(SqlRentalHistoryStore(db_session))
    service = DeviceLifecycleService(SqlDeviceStore(db_session), log)
    device = service.register_device(
        {"model_name": "Pixel 8", "os_name": "Android", "os_version": "14"},
        ADMIN,
    )

    def broken_count():
        raise RuntimeError("count unavailable")

    monkeypatch.setattr(log.store, "count", broken_count)
    borrowed = service.borrow(device.id, ALICE)

    assert borrowed.status == DeviceStatus.IN_USE
    assert len(log.list_recent()) == 1


def test_delete_record(store):
    record = _append(store, 1)
    log = RentalHistoryLog(store)

    log.delete_record(record.id)

    assert store.get(record.id) is None
    with pytest.raises(NotFound):
        log.delete_record(record.id)

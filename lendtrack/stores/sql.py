"""Relational backend built on SQLAlchemy sessions."""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator, Mapping, Optional

from sqlalchemy import asc, delete, desc, func, select, update
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from ..core.errors import Conflict, InputValidationError, StoreTimeout, StoreUnavailable
from ..models.device import AssetTagCounter, DeviceRow
from ..models.rental_history import RentalHistoryRow
from ..schemas.device import Device, DeviceStatus
from ..schemas.rental_history import RentalHistoryRecord, RentalStatus
from .base import DeviceStore, RentalHistoryStore, check_order_field


def _pk(identifier: Any) -> int | None:
    try:
        return int(identifier)
    except (TypeError, ValueError):
        return None


def _column_values(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in fields.items()}


@contextmanager
def _store_errors(db: Session) -> Iterator[None]:
    """Roll back and translate driver failures into lending errors."""

    try:
        yield
    except sa_exc.TimeoutError as exc:
        db.rollback()
        raise StoreTimeout("database did not respond in time") from exc
    except sa_exc.OperationalError as exc:
        db.rollback()
        # SQLite reports an expired busy timeout as "database is locked".
        if "locked" in str(exc.orig).lower():
            raise StoreTimeout("database did not respond in time") from exc
        raise StoreUnavailable("database is unavailable") from exc
    except sa_exc.DBAPIError as exc:
        db.rollback()
        if exc.connection_invalidated:
            raise StoreUnavailable("database connection was lost") from exc
        raise


class SqlDeviceStore(DeviceStore):
    def __init__(self, db: Session) -> None:
        self.db = db

    def _row(self, device_id: str) -> DeviceRow | None:
        pk = _pk(device_id)
        if pk is None:
            return None
        return self.db.get(DeviceRow, pk, populate_existing=True)

    def get(self, device_id: str) -> Optional[Device]:
        with _store_errors(self.db):
            row = self._row(device_id)
        return Device.model_validate(row) if row else None

    def get_by_uuid(self, uuid: str) -> Optional[Device]:
        with _store_errors(self.db):
            row = self.db.execute(select(DeviceRow).where(DeviceRow.uuid == uuid)).scalars().first()
        return Device.model_validate(row) if row else None

    def create(self, fields: Mapping[str, Any]) -> Device:
        row = DeviceRow(**_column_values(fields))
        with _store_errors(self.db):
            self.db.add(row)
            try:
                self.db.commit()
            except sa_exc.IntegrityError as exc:
                self.db.rollback()
                raise Conflict("duplicate device", details={"uuid": fields.get("uuid")}) from exc
            self.db.refresh(row)
        return Device.model_validate(row)

    def update(self, device_id: str, fields: Mapping[str, Any]) -> Optional[Device]:
        with _store_errors(self.db):
            row = self._row(device_id)
            if row is None:
                return None
            for key, value in _column_values(fields).items():
                setattr(row, key, value)
            try:
                self.db.commit()
            except sa_exc.IntegrityError as exc:
                self.db.rollback()
                if fields.get("uuid"):
                    raise Conflict("duplicate device", details={"uuid": fields["uuid"]}) from exc
                raise InputValidationError(
                    "device fields violate a store constraint",
                    details={"fields": sorted(fields)},
                ) from exc
            self.db.refresh(row)
        return Device.model_validate(row)

    def transition(
        self,
        device_id: str,
        expected_status: DeviceStatus,
        fields: Mapping[str, Any],
    ) -> Optional[Device]:
        pk = _pk(device_id)
        if pk is None:
            return None
        stmt = (
            update(DeviceRow)
            .where(DeviceRow.id == pk, DeviceRow.status == expected_status.value)
            .values(**_column_values(fields))
            .execution_options(synchronize_session=False)
        )
        with _store_errors(self.db):
            result = self.db.execute(stmt)
            if result.rowcount != 1:
                self.db.rollback()
                return None
            self.db.commit()
        return self.get(device_id)

    def delete(self, device_id: str, expected_status: Optional[DeviceStatus] = None) -> bool:
        pk = _pk(device_id)
        if pk is None:
            return False
        stmt = delete(DeviceRow).where(DeviceRow.id == pk)
        if expected_status is not None:
            stmt = stmt.where(DeviceRow.status == expected_status.value)
        with _store_errors(self.db):
            result = self.db.execute(stmt.execution_options(synchronize_session=False))
            self.db.commit()
        return result.rowcount == 1

    def _list(self, *criteria, order=None) -> list[Device]:
        stmt = select(DeviceRow).where(*criteria).order_by(
            order if order is not None else desc(DeviceRow.updated_at),
            desc(DeviceRow.id),
        )
        with _store_errors(self.db):
            rows = self.db.execute(stmt).scalars().all()
        return [Device.model_validate(row) for row in rows]

    def list_all(self) -> list[Device]:
        return self._list()

    def list_by_status(self, status: DeviceStatus) -> list[Device]:
        return self._list(DeviceRow.status == status.value)

    def list_by_user(self, user_id: str) -> list[Device]:
        return self._list(DeviceRow.current_user_id == str(user_id), order=desc(DeviceRow.borrowed_at))

    def next_asset_number(self, prefix: str) -> int:
        # Flushed, not committed: the number is only consumed once the device
        # row that carries it commits in the same transaction.
        with _store_errors(self.db):
            counter = self.db.get(AssetTagCounter, prefix, with_for_update=True)
            if counter is None:
                counter = AssetTagCounter(prefix=prefix, value=0)
                self.db.add(counter)
            counter.value = (counter.value or 0) + 1
            self.db.flush()
            return counter.value


class SqlRentalHistoryStore(RentalHistoryStore):
    def __init__(self, db: Session) -> None:
        self.db = db

    def _row(self, record_id: str) -> RentalHistoryRow | None:
        pk = _pk(record_id)
        if pk is None:
            return None
        return self.db.get(RentalHistoryRow, pk, populate_existing=True)

    def append(self, fields: Mapping[str, Any]) -> RentalHistoryRecord:
        row = RentalHistoryRow(**_column_values(fields))
        with _store_errors(self.db):
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        return RentalHistoryRecord.model_validate(row)

    def get(self, record_id: str) -> Optional[RentalHistoryRecord]:
        with _store_errors(self.db):
            row = self._row(record_id)
        return RentalHistoryRecord.model_validate(row) if row else None

    def update(self, record_id: str, fields: Mapping[str, Any]) -> Optional[RentalHistoryRecord]:
        with _store_errors(self.db):
            row = self._row(record_id)
            if row is None:
                return None
            for key, value in _column_values(fields).items():
                setattr(row, key, value)
            self.db.commit()
            self.db.refresh(row)
        return RentalHistoryRecord.model_validate(row)

    def delete(self, record_id: str) -> bool:
        pk = _pk(record_id)
        if pk is None:
            return False
        stmt = delete(RentalHistoryRow).where(RentalHistoryRow.id == pk)
        with _store_errors(self.db):
            result = self.db.execute(stmt.execution_options(synchronize_session=False))
            self.db.commit()
        return result.rowcount == 1

    def list_all(
        self,
        order_by: str = "created_at",
        *,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[RentalHistoryRecord]:
        column = getattr(RentalHistoryRow, check_order_field(order_by))
        direction = desc if descending else asc
        stmt = select(RentalHistoryRow).order_by(direction(column), direction(RentalHistoryRow.id))
        if limit is not None:
            stmt = stmt.limit(limit)
        with _store_errors(self.db):
            rows = self.db.execute(stmt).scalars().all()
        return [RentalHistoryRecord.model_validate(row) for row in rows]

    def find_open(self, device_id: str) -> Optional[RentalHistoryRecord]:
        stmt = (
            select(RentalHistoryRow)
            .where(
                RentalHistoryRow.device_id == str(device_id),
                RentalHistoryRow.status == RentalStatus.BORROWED.value,
            )
            .order_by(desc(RentalHistoryRow.borrowed_at), desc(RentalHistoryRow.id))
            .limit(1)
        )
        with _store_errors(self.db):
            row = self.db.execute(stmt).scalars().first()
        return RentalHistoryRecord.model_validate(row) if row else None

    def count(self) -> int:
        with _store_errors(self.db):
            return int(self.db.execute(select(func.count(RentalHistoryRow.id))).scalar_one())

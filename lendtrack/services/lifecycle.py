"""Device lifecycle: registration, borrow/return and removal.

A device is either ``available`` or ``in_use``. Every transition is written to
the device store as one conditional update (status, holder and borrow time
move together) and is then mirrored into the rental history. The device write
is the source of truth: if the history write fails afterwards, the failure is
logged and the caller still sees success.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..core.clock import utcnow
from ..core.errors import Conflict, Forbidden, InputValidationError, NotFound
from ..schemas.auth import Actor
from ..schemas.device import EDITABLE_FIELDS, REQUIRED_FIELDS, Device, DeviceStatus
from ..stores.base import DeviceStore
from .history import RentalHistoryLog

logger = logging.getLogger(__name__)

IOS_NAMES = {"ios", "ipados"}


def asset_tag_prefix(os_name: str) -> str:
    return "I" if (os_name or "").strip().lower() in IOS_NAMES else "A"


def format_asset_tag(prefix: str, number: int) -> str:
    return f"{prefix}{number:05d}"


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


def _event(name: str, **data: Any) -> None:
    logger.info(name, extra={"extra_data": data})


class DeviceLifecycleService:
    def __init__(self, devices: DeviceStore, history: RentalHistoryLog) -> None:
        self.devices = devices
        self.history = history

    # ---- queries

    def get_device(self, device_id: str) -> Device:
        device = self.devices.get(device_id)
        if device is None:
            raise NotFound("device not found", details={"id": device_id})
        return device

    def list_devices(
        self,
        *,
        status: Optional[DeviceStatus] = None,
        os_name: Optional[str] = None,
        manufacturer: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Device]:
        devices = self.devices.list_by_status(status) if status else self.devices.list_all()
        if os_name:
            devices = [d for d in devices if d.os_name == os_name]
        if manufacturer:
            devices = [d for d in devices if d.manufacturer == manufacturer]
        needle = (search or "").strip().lower()
        if needle:
            devices = [
                d
                for d in devices
                if needle in d.model_name.lower()
                or needle in d.os_version.lower()
                or needle in (d.manufacturer or "").lower()
            ]
        return devices

    def list_devices_for_user(self, user_id: str) -> list[Device]:
        return self.devices.list_by_user(user_id)

    # ---- registration & edits

    def register_device(self, form: Mapping[str, Any], actor: Actor) -> Device:
        data = {key: _clean(form.get(key)) for key in EDITABLE_FIELDS if form.get(key) is not None}
        missing = [key for key in REQUIRED_FIELDS if not data.get(key)]
        if missing:
            raise InputValidationError("required device fields are missing", details={"missing": missing})
        data.setdefault("manufacturer", "")
        uuid = data.get("uuid") or None
        data["uuid"] = uuid
        if uuid and self.devices.get_by_uuid(uuid) is not None:
            raise Conflict("duplicate device", details={"uuid": uuid})

        prefix = asset_tag_prefix(data["os_name"])
        now = utcnow()
        data.update(
            asset_tag=format_asset_tag(prefix, self.devices.next_asset_number(prefix)),
            status=DeviceStatus.AVAILABLE,
            current_user_id=None,
            current_user_name=None,
            borrowed_at=None,
            registered_by=actor.id,
            registered_at=now,
            updated_at=now,
        )
        device = self.devices.create(data)
        _event("device.registered", device_id=device.id, asset_tag=device.asset_tag, actor=actor.id)
        return device

    def update_device(self, device_id: str, changes: Mapping[str, Any]) -> Device:
        device = self.get_device(device_id)
        data = {key: _clean(value) for key, value in changes.items() if key in EDITABLE_FIELDS}
        blanked = [key for key in REQUIRED_FIELDS if key in data and not data[key]]
        if blanked:
            raise InputValidationError("required device fields cannot be blank", details={"fields": blanked})
        if "manufacturer" in data and data["manufacturer"] is None:
            data["manufacturer"] = ""
        if "uuid" in data:
            data["uuid"] = data["uuid"] or None
            if data["uuid"] and data["uuid"] != device.uuid:
                existing = self.devices.get_by_uuid(data["uuid"])
                if existing is not None and existing.id != device.id:
                    raise Conflict("duplicate device", details={"uuid": data["uuid"]})
        if not data:
            return device
        data["updated_at"] = utcnow()
        updated = self.devices.update(device_id, data)
        if updated is None:
            raise NotFound("device not found", details={"id": device_id})
        _event("device.updated", device_id=device_id, fields=sorted(data))
        return updated

    def delete_device(self, device_id: str) -> None:
        device = self.get_device(device_id)
        if device.status != DeviceStatus.AVAILABLE:
            raise Conflict("cannot delete device in use", details={"id": device_id})
        if not self.devices.delete(device_id, expected_status=DeviceStatus.AVAILABLE):
            # Borrowed or removed between the read and the delete.
            if self.devices.get(device_id) is None:
                raise NotFound("device not found", details={"id": device_id})
            raise Conflict("cannot delete device in use", details={"id": device_id})
        _event("device.deleted", device_id=device_id)

    # ---- borrow / return

    def borrow(self, device_id: str, actor: Actor) -> Device:
        if not (actor.id or "").strip() or not (actor.display_name or "").strip():
            raise InputValidationError("actor id and display name are required")
        device = self.get_device(device_id)
        if device.status != DeviceStatus.AVAILABLE:
            raise Conflict("device is already in use", details={"id": device_id})

        now = utcnow()
        updated = self.devices.transition(
            device_id,
            DeviceStatus.AVAILABLE,
            {
                "status": DeviceStatus.IN_USE,
                "current_user_id": actor.id,
                "current_user_name": actor.display_name,
                "borrowed_at": now,
                "updated_at": now,
            },
        )
        if updated is None:
            raise Conflict("device is already in use", details={"id": device_id})
        _event("device.borrowed", device_id=device_id, actor=actor.id)

        try:
            self.history.record_borrow(updated, actor, now)
        except Exception:
            logger.exception("history.append_failed", extra={"extra_data": {"device_id": device_id}})
        self.history.prune_quietly()
        return updated

    def return_device(self, device_id: str, actor: Actor) -> Device:
        """Hand a device back. Only the current holder may do this."""

        device = self.get_device(device_id)
        if device.status != DeviceStatus.IN_USE:
            raise Conflict("device is not in use", details={"id": device_id})
        if device.current_user_id != actor.id:
            raise Forbidden("not the current holder", details={"id": device_id})
        return self._release(device_id, actor, forced=False)

    def force_return(self, device_id: str, actor: Actor) -> Device:
        """Admin override of :meth:`return_device`; skips the holder check."""

        device = self.get_device(device_id)
        if device.status != DeviceStatus.IN_USE:
            raise Conflict("device is not in use", details={"id": device_id})
        return self._release(device_id, actor, forced=True)

    def _release(self, device_id: str, actor: Actor, *, forced: bool) -> Device:
        now = utcnow()
        updated = self.devices.transition(
            device_id,
            DeviceStatus.IN_USE,
            {
                "status": DeviceStatus.AVAILABLE,
                "current_user_id": None,
                "current_user_name": None,
                "borrowed_at": None,
                "updated_at": now,
            },
        )
        if updated is None:
            raise Conflict("device is not in use", details={"id": device_id})
        _event("device.returned", device_id=device_id, actor=actor.id, forced=forced)

        try:
            record = self.history.record_return(device_id, now)
        except Exception:
            logger.exception("history.close_failed", extra={"extra_data": {"device_id": device_id}})
        else:
            if record is None:
                logger.warning("history.open_record_missing", extra={"extra_data": {"device_id": device_id}})
        return updated

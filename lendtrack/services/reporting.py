from __future__ import annotations

import csv
import io
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from ..core.clock import as_utc
from ..schemas.device import Device

MISSING = "-"
CSV_HEADERS = [
    "ID",
    "Model Name",
    "OS",
    "OS Version",
    "Manufacturer",
    "UUID",
    "Status",
    "Current User",
    "Borrowed At",
    "Registered At",
]


def _cell(value: Any) -> str:
    if value is None or value == "":
        return MISSING
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def device_row(device: Device) -> list[str]:
    return [
        _cell(device.asset_tag or device.id),
        _cell(device.model_name),
        _cell(device.os_name),
        _cell(device.os_version),
        _cell(device.manufacturer),
        _cell(device.uuid),
        _cell(device.status),
        _cell(device.current_user_name),
        _cell(device.borrowed_at),
        _cell(device.registered_at),
    ]


def devices_to_csv(devices: Iterable[Device]) -> str:
    """Render the device inventory for the admin export (every cell quoted)."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for device in devices:
        writer.writerow(device_row(device))
    return buffer.getvalue().rstrip("\n")

"""Device records as the rest of the application sees them.

Both storage backends convert their rows/documents into :class:`Device` so the
lifecycle service never has to care where the data came from.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ..core.clock import as_utc


class DeviceStatus(str, Enum):
    AVAILABLE = "available"
    IN_USE = "in_use"


# Fields an explicit edit may touch. Status and holder fields only move
# through borrow/return.
EDITABLE_FIELDS = (
    "model_name",
    "internal_model_id",
    "os_name",
    "os_version",
    "manufacturer",
    "screen_size",
    "physical_memory",
    "uuid",
    "memo",
)
REQUIRED_FIELDS = ("model_name", "os_name", "os_version")


class Device(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        coerce_numbers_to_str=True,
        protected_namespaces=(),
    )

    id: str
    asset_tag: Optional[str] = None
    model_name: str
    internal_model_id: Optional[str] = None
    os_name: str
    os_version: str
    manufacturer: str = ""
    screen_size: Optional[str] = None
    physical_memory: Optional[str] = None
    uuid: Optional[str] = None
    memo: Optional[str] = None

    status: DeviceStatus = DeviceStatus.AVAILABLE
    current_user_id: Optional[str] = None
    current_user_name: Optional[str] = None
    borrowed_at: Optional[datetime] = None

    registered_by: Optional[str] = None
    registered_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("borrowed_at", "registered_at", "updated_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def display_name(self) -> str:
        return self.model_name


class DeviceCreate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_name: str
    os_name: str
    os_version: str
    manufacturer: str = ""
    internal_model_id: Optional[str] = None
    screen_size: Optional[str] = None
    physical_memory: Optional[str] = None
    uuid: Optional[str] = None
    memo: Optional[str] = None


class DeviceUpdate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_name: Optional[str] = None
    internal_model_id: Optional[str] = None
    os_name: Optional[str] = None
    os_version: Optional[str] = None
    manufacturer: Optional[str] = None
    screen_size: Optional[str] = None
    physical_memory: Optional[str] = None
    uuid: Optional[str] = None
    memo: Optional[str] = None

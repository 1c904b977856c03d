from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ..core.clock import as_utc


class RentalStatus(str, Enum):
    BORROWED = "borrowed"
    RETURNED = "returned"


class RentalHistoryRecord(BaseModel):
    """One borrow-to-return cycle.

    Device and user fields are snapshots taken at borrow time; renaming a
    device later does not rewrite its history.
    """

    model_config = ConfigDict(from_attributes=True, coerce_numbers_to_str=True)

    id: str
    device_id: str
    device_name: str
    manufacturer: Optional[str] = None
    os_name: Optional[str] = None
    os_version: Optional[str] = None
    user_id: str
    user_name: str
    borrowed_at: datetime
    returned_at: Optional[datetime] = None
    status: RentalStatus = RentalStatus.BORROWED
    created_at: Optional[datetime] = None

    @field_validator("borrowed_at", "returned_at", "created_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

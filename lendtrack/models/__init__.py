from .device import AssetTagCounter, DeviceRow
from .rental_history import RentalHistoryRow

__all__ = ["AssetTagCounter", "DeviceRow", "RentalHistoryRow"]

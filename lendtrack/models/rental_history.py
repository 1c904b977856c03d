from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text

from ..db.session import Base


class RentalHistoryRow(Base):
    """A borrow/return cycle.

    ``device_id`` is deliberately not a foreign key: history outlives the
    device it describes.
    """

    __tablename__ = "rental_history"

    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(String(64), nullable=False, index=True)
    device_name = Column(Text, nullable=False)
    manufacturer = Column(Text, nullable=True)
    os_name = Column(String(64), nullable=True)
    os_version = Column(String(64), nullable=True)
    user_id = Column(String(128), nullable=False, index=True)
    user_name = Column(Text, nullable=False)
    borrowed_at = Column(DateTime(timezone=True), nullable=False, index=True)
    returned_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(16), nullable=False, default="borrowed", index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

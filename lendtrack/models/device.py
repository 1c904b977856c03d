from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text

from ..db.session import Base


class DeviceRow(Base):
    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, index=True)
    asset_tag = Column(String(16), nullable=True, unique=True, index=True)
    model_name = Column(Text, nullable=False)
    internal_model_id = Column(Text, nullable=True)
    os_name = Column(String(64), nullable=False, index=True)
    os_version = Column(String(64), nullable=False)
    manufacturer = Column(String(128), nullable=False, default="", index=True)
    screen_size = Column(String(64), nullable=True)
    physical_memory = Column(String(64), nullable=True)
    uuid = Column(String(255), nullable=True, unique=True, index=True)
    memo = Column(Text, nullable=True)

    status = Column(String(16), nullable=False, default="available", index=True)
    current_user_id = Column(String(128), nullable=True, index=True)
    current_user_name = Column(Text, nullable=True)
    borrowed_at = Column(DateTime(timezone=True), nullable=True)

    registered_by = Column(String(128), nullable=True)
    registered_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, index=True)


class AssetTagCounter(Base):
    """Last number handed out per asset-tag prefix (``I`` for iOS, ``A`` otherwise)."""

    __tablename__ = "asset_tag_counters"

    prefix = Column(String(8), primary_key=True)
    value = Column(Integer, nullable=False, default=0)

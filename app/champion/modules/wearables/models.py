from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.champion.models import Base
from app.champion.utils import iso, utcnow


class WearableDevice(Base):
    __tablename__ = "wearable_devices"
    __table_args__ = (UniqueConstraint("user_id", "device_type", "device_id", name="uq_wearable_devices_user_device"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    device_type: Mapped[str] = mapped_column(String(32), nullable=False)
    device_id: Mapped[str] = mapped_column(String(255), nullable=False)  # vendor-side identifier
    device_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_connected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    connected_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    disconnected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deviceType": self.device_type,
            "deviceId": self.device_id,
            "deviceName": self.device_name,
            "isConnected": self.is_connected,
            "connectedAt": iso(self.connected_at),
            "disconnectedAt": iso(self.disconnected_at),
            "lastSyncAt": iso(self.last_sync_at),
        }


class HealthData(Base):
    __tablename__ = "health_data"
    __table_args__ = (Index("idx_health_data_user_type", "user_id", "data_type", "recorded_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    device_id: Mapped[int | None] = mapped_column(ForeignKey("wearable_devices.id", ondelete="SET NULL"), nullable=True)
    data_type: Mapped[str] = mapped_column(String(32), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str | None] = mapped_column(String(32), nullable=True)
    extra: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deviceId": self.device_id,
            "type": self.data_type,
            "value": self.value,
            "unit": self.unit,
            "metadata": self.extra,
            "recordedAt": iso(self.recorded_at),
        }

"""Asset model - the durable inventory record."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin

ASSET_TYPES = ("LAPTOP", "DESKTOP", "TABLET", "PHONE", "SERVER", "OTHER")
ASSET_STATUSES = ("AVAILABLE", "ASSIGNED", "SPARE", "MAINTENANCE", "RETIRED", "DISPOSED")
ASSET_CONDITIONS = ("NEW", "GOOD", "FAIR", "POOR")

STATUS_ASSIGNED = "ASSIGNED"
STATUS_AVAILABLE = "AVAILABLE"
STATUS_RETIRED = "RETIRED"


class Asset(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "asset"

    asset_tag: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    serial_number: Mapped[str | None] = mapped_column(String(100), unique=True, default=None)
    asset_type: Mapped[str] = mapped_column(String(20), default="LAPTOP", index=True)
    status: Mapped[str] = mapped_column(String(20), default=STATUS_AVAILABLE, index=True)
    condition: Mapped[str] = mapped_column(String(20), default="GOOD")
    source: Mapped[str] = mapped_column(String(30), default="MANUAL")  # NINJAONE, TELUS, EXCEL, ...
    make: Mapped[str | None] = mapped_column(String(100), default=None)
    model: Mapped[str | None] = mapped_column(String(200), default=None)
    # JSON-encoded key/value map; opaque to the database.
    specifications: Mapped[str | None] = mapped_column(Text, default=None)

    assigned_to_id: Mapped[str | None] = mapped_column(String(100), default=None)
    assigned_to_aad_id: Mapped[str | None] = mapped_column(String(200), default=None)
    department_id: Mapped[str | None] = mapped_column(String(100), default=None)
    location_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("location.id", ondelete="SET NULL"), default=None, index=True
    )
    vendor_id: Mapped[str | None] = mapped_column(String(100), default=None)

    purchase_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    purchase_price: Mapped[float | None] = mapped_column(Float, default=None)
    warranty_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    warranty_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    warranty_notes: Mapped[str | None] = mapped_column(Text, default=None)
    notes: Mapped[str | None] = mapped_column(Text, default=None)

    created_by_id: Mapped[str | None] = mapped_column(String(100), default=None)
    updated_by_id: Mapped[str | None] = mapped_column(String(100), default=None)

    def __repr__(self) -> str:
        return f"<Asset {self.asset_tag} ({self.status})>"

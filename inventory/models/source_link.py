"""External source link - per-source presence bookkeeping for an asset."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin


class ExternalSourceLink(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "external_source_link"
    __table_args__ = (
        UniqueConstraint("source_system", "external_id", name="uq_source_link_system_external_id"),
    )

    asset_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("asset.id", ondelete="CASCADE"), index=True
    )
    source_system: Mapped[str] = mapped_column(String(30), index=True)
    # Must equal the owning asset's serial number; anything else is an orphan.
    external_id: Mapped[str] = mapped_column(String(100))
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    is_present: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        state = "present" if self.is_present else "absent"
        return f"<ExternalSourceLink {self.source_system}:{self.external_id} {state}>"

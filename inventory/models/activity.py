"""Activity model - audit trail for asset writes."""

from __future__ import annotations

import uuid

from sqlalchemy import JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin


class Activity(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "activity_log"

    entity_type: Mapped[str] = mapped_column(String(50), index=True)  # asset, import_sync_run
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    action: Mapped[str] = mapped_column(String(50))  # CREATE, UPDATE, RETIRE, REACTIVATE, IMPORT
    description: Mapped[str | None] = mapped_column(Text, default=None)
    changes_json: Mapped[dict | None] = mapped_column(JSON, default=None)
    user_id: Mapped[str | None] = mapped_column(String(100), default=None)

    def __repr__(self) -> str:
        return f"<Activity {self.action} {self.entity_type}>"

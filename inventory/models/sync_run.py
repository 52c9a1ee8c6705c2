"""Import sync run - audit record of one reconciliation invocation."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin


class ImportSyncRun(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "import_sync_run"

    source_system: Mapped[str] = mapped_column(String(30), index=True)
    is_full_snapshot: Mapped[bool] = mapped_column(Boolean, default=False)
    initiated_by: Mapped[str | None] = mapped_column(String(100), default=None)
    session_id: Mapped[str | None] = mapped_column(String(100), default=None, index=True)
    status: Mapped[str] = mapped_column(String(20), default="running")  # running/completed/failed
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None, nullable=True
    )
    stats_json: Mapped[dict | None] = mapped_column(JSON, default=None)
    error_message: Mapped[str | None] = mapped_column(Text, default=None)

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    def __repr__(self) -> str:
        return f"<ImportSyncRun {self.source_system} {self.status}>"

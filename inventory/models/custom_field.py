"""Custom field definitions (EAV pattern) and per-asset values."""

from __future__ import annotations

import uuid

from sqlalchemy import JSON, Boolean, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin


class CustomField(UUIDMixin, TimestampMixin, Base):
    """Defines a custom asset field."""

    __tablename__ = "custom_field"

    name: Mapped[str] = mapped_column(String(200), unique=True)
    field_type: Mapped[str] = mapped_column(String(50), default="STRING")  # STRING, NUMBER, DATE, BOOLEAN, SELECT
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    options_json: Mapped[list | None] = mapped_column(JSON, default=None)

    def __repr__(self) -> str:
        return f"<CustomField {self.name!r}>"


class CustomFieldValue(UUIDMixin, TimestampMixin, Base):
    """Stores a custom field value for a specific asset."""

    __tablename__ = "custom_field_value"
    __table_args__ = (
        UniqueConstraint("asset_id", "field_id", name="uq_cfv_asset_field"),
    )

    asset_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("asset.id", ondelete="CASCADE"), index=True
    )
    field_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("custom_field.id", ondelete="CASCADE"), index=True
    )
    value: Mapped[str] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<CustomFieldValue field={self.field_id} asset={self.asset_id}>"

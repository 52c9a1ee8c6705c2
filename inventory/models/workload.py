"""Workload categories, their classification rules, and asset links."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin


class WorkloadCategory(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "workload_category"

    name: Mapped[str] = mapped_column(String(100), unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<WorkloadCategory {self.name!r}>"


class WorkloadCategoryRule(UUIDMixin, TimestampMixin, Base):
    """Ordered predicate; lowest priority value is evaluated first."""

    __tablename__ = "workload_category_rule"

    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workload_category.id", ondelete="CASCADE"), index=True
    )
    priority: Mapped[int] = mapped_column(Integer, default=100, index=True)
    source_field: Mapped[str] = mapped_column(String(200))  # asset_type, specifications.ram, ...
    operator: Mapped[str] = mapped_column(String(20))  # =, !=, >=, <=, >, <, includes, regex
    value: Mapped[str] = mapped_column(String(500))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<WorkloadCategoryRule {self.source_field} {self.operator} {self.value!r}>"


class AssetWorkloadCategory(Base):
    """Join table for assets <-> workload categories."""

    __tablename__ = "asset_workload_category"

    asset_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("asset.id", ondelete="CASCADE"), primary_key=True
    )
    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workload_category.id", ondelete="CASCADE"), primary_key=True
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

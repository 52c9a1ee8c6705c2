"""Location model - canonical office/site records."""

from __future__ import annotations

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin


class Location(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "location"
    __table_args__ = (
        UniqueConstraint("city", "province", "country", name="uq_location_city_province_country"),
    )

    city: Mapped[str] = mapped_column(String(100), index=True)
    province: Mapped[str] = mapped_column(String(100))
    country: Mapped[str] = mapped_column(String(100), default="Canada")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    @property
    def label(self) -> str:
        return f"{self.city}, {self.province}"

    def __repr__(self) -> str:
        return f"<Location {self.city}, {self.province}>"

"""Custom field definition + value service (EAV)."""

from __future__ import annotations

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.custom_field import CustomField, CustomFieldValue


async def list_active_fields(db: AsyncSession) -> list[CustomField]:
    stmt = select(CustomField).where(CustomField.is_active.is_(True)).order_by(CustomField.name)
    result = await db.execute(stmt)
    return list(result.scalars().all())


def build_field_index(fields: list[CustomField]) -> dict[str, uuid.UUID]:
    """Keys are field ids (as strings) and lower-cased field names."""
    index: dict[str, uuid.UUID] = {}
    for f in fields:
        index[str(f.id)] = f.id
        index[f.name.strip().lower()] = f.id
    return index


def resolve_field_values(index: dict[str, uuid.UUID], values: dict[str, str]) -> dict[uuid.UUID, str]:
    """Translate draft custom-field keys to field ids, dropping unknown keys."""
    resolved: dict[uuid.UUID, str] = {}
    for key, value in values.items():
        field_id = index.get(key.strip()) or index.get(key.strip().lower())
        if field_id is not None:
            resolved[field_id] = value
    return resolved


async def replace_values(db: AsyncSession, asset_id: uuid.UUID, values: dict[uuid.UUID, str]) -> None:
    """Replace all custom field values of an asset. Does not commit."""
    await db.execute(delete(CustomFieldValue).where(CustomFieldValue.asset_id == asset_id))
    for field_id, value in values.items():
        db.add(CustomFieldValue(asset_id=asset_id, field_id=field_id, value=value))


async def get_values_for_asset(db: AsyncSession, asset_id: uuid.UUID) -> dict[uuid.UUID, str]:
    """Returns {field_id: value} mapping for an asset."""
    stmt = select(CustomFieldValue).where(CustomFieldValue.asset_id == asset_id)
    result = await db.execute(stmt)
    return {v.field_id: v.value for v in result.scalars().all()}

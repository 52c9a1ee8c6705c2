"""Workload category rules service."""

from __future__ import annotations

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.workload import AssetWorkloadCategory, WorkloadCategory, WorkloadCategoryRule
from ..sync.rules import ClassificationRule


async def load_active_rules(db: AsyncSession) -> list[ClassificationRule]:
    """Active rules of active categories, ordered by ascending priority."""
    stmt = (
        select(WorkloadCategoryRule, WorkloadCategory.name)
        .join(WorkloadCategory, WorkloadCategory.id == WorkloadCategoryRule.category_id)
        .where(
            WorkloadCategoryRule.is_active.is_(True),
            WorkloadCategory.is_active.is_(True),
        )
        .order_by(WorkloadCategoryRule.priority, WorkloadCategoryRule.created_at)
    )
    result = await db.execute(stmt)
    return [
        ClassificationRule(
            id=rule.id,
            category_id=rule.category_id,
            category_name=category_name,
            priority=rule.priority,
            source_field=rule.source_field,
            operator=rule.operator,
            value=rule.value,
            description=rule.description,
        )
        for rule, category_name in result.all()
    ]


async def replace_asset_category(db: AsyncSession, asset_id: uuid.UUID, category_id: uuid.UUID) -> None:
    """Point the asset at exactly one workload category. Does not commit."""
    await db.execute(delete(AssetWorkloadCategory).where(AssetWorkloadCategory.asset_id == asset_id))
    db.add(AssetWorkloadCategory(asset_id=asset_id, category_id=category_id))


async def get_asset_category_ids(db: AsyncSession, asset_id: uuid.UUID) -> list[uuid.UUID]:
    stmt = select(AssetWorkloadCategory.category_id).where(AssetWorkloadCategory.asset_id == asset_id)
    result = await db.execute(stmt)
    return list(result.scalars().all())

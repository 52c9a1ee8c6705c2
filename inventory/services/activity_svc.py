"""Activity service - audit trail logging."""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.activity import Activity


def record_activity(
    db: AsyncSession,
    entity_type: str,
    entity_id: uuid.UUID,
    action: str,
    description: str | None = None,
    changes: dict | None = None,
    user_id: str | None = None,
) -> Activity:
    """Stage an activity entry; the caller commits with its own write."""
    activity = Activity(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        description=description,
        changes_json=changes,
        user_id=user_id,
    )
    db.add(activity)
    return activity


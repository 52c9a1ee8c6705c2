"""Batch-level assignee and location resolution for drafts."""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from .directory import CachedDirectory, DirectoryUser
from .draft import AssetDraft
from .locations import match_locations
from .normalizers import is_guid

logger = logging.getLogger(__name__)


def assignee_names(drafts: Iterable[AssetDraft]) -> list[str]:
    """Distinct assignee references that need a directory lookup."""
    names = []
    for draft in drafts:
        name = (draft.assigned_to_aad_id or "").strip()
        if name and not is_guid(name):
            names.append(name)
    return list(dict.fromkeys(names))


async def resolve_assignments(
    db: AsyncSession,
    drafts: list[AssetDraft],
    *,
    directory: CachedDirectory | None = None,
    user_overrides: Mapping[str, DirectoryUser | None] | None = None,
    location_overrides: Mapping[str, uuid.UUID | None] | None = None,
) -> dict[str, int]:
    """Resolve assignees and free-text locations for one batch in place.

    Caller-supplied maps win over directory and location matching results.
    Directory errors propagate so the caller can fail the whole batch.
    Returns counts of resolved users and locations.
    """
    user_overrides = dict(user_overrides or {})
    location_overrides = dict(location_overrides or {})

    names = assignee_names(drafts)
    lookup = [n for n in names if n not in user_overrides]
    users: dict[str, DirectoryUser | None] = {}
    if lookup and directory is not None:
        users.update(await directory.resolve(lookup))
    users.update(user_overrides)

    labels: list[str] = []
    for draft in drafts:
        if draft.location_id:
            continue
        if draft.location_name:
            labels.append(draft.location_name.strip())
        user = users.get((draft.assigned_to_aad_id or "").strip())
        if user and user.office_location:
            labels.append(user.office_location.strip())
    pending = [label for label in dict.fromkeys(labels) if label and label not in location_overrides]
    locations: dict[str, uuid.UUID | None] = await match_locations(db, pending) if pending else {}
    locations.update(location_overrides)

    resolved_users = 0
    resolved_locations = 0
    for draft in drafts:
        name = (draft.assigned_to_aad_id or "").strip()
        user = None
        if name and not is_guid(name):
            user = users.get(name)
            if user is not None:
                draft.assigned_to_aad_id = user.id
                draft.assignee_display_name = user.display_name or None
                resolved_users += 1
            else:
                logger.warning("Could not resolve user %r; keeping original assignment for review", name)
                draft.processing_notes.append(f"Unresolved assignee {name!r}")

        if draft.location_id is None and draft.location_name:
            draft.location_id = locations.get(draft.location_name.strip())
        if draft.location_id is None and user is not None and user.office_location:
            draft.location_id = locations.get(user.office_location.strip())
        if draft.location_id is not None:
            resolved_locations += 1

    return {"users": resolved_users, "locations": resolved_locations}

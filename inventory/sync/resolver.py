"""Identifier and conflict resolution: decide create vs update and persist one draft."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..models.asset import Asset
from ..services import custom_field_svc, rule_svc
from ..services.activity_svc import record_activity
from .draft import AssetDraft
from .errors import TagCollisionError
from .outcomes import OP_CREATE, OP_UPDATE
from .presence import apply_reactivation_veto, mark_seen
from .rules import RuleMatch
from .tags import regenerate_tag, superseded_tag

logger = logging.getLogger(__name__)

POLICY_SKIP = "skip"
POLICY_OVERWRITE = "overwrite"
RESOLUTION_POLICIES = (POLICY_SKIP, POLICY_OVERWRITE)

# Columns compared for the activity diff.
_AUDITED_COLUMNS = (
    "asset_tag", "serial_number", "asset_type", "status", "condition", "source", "make", "model",
    "assigned_to_id", "assigned_to_aad_id", "department_id", "location_id", "vendor_id",
    "purchase_date", "purchase_price", "warranty_start_date", "warranty_end_date",
    "warranty_notes", "notes", "specifications",
)


@dataclass(frozen=True)
class ResolveOptions:
    policy: str = POLICY_OVERWRITE
    user_id: str | None = None
    track_presence: bool = False
    allowed_reactivations: frozenset[str] = frozenset()
    field_index: dict[str, uuid.UUID] | None = None


@dataclass(frozen=True)
class Resolution:
    operation: str | None
    asset_id: uuid.UUID | None = None
    asset_tag: str | None = None
    status: str | None = None
    reactivated: bool = False
    reactivation_vetoed: bool = False
    skip_reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def _diff(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    changes = {}
    for key in _AUDITED_COLUMNS:
        old, new = _jsonable(before.get(key)), _jsonable(after.get(key))
        if old != new:
            changes[key] = {"from": old, "to": new}
    return changes


def _snapshot(asset: Asset) -> dict[str, Any]:
    return {key: getattr(asset, key) for key in _AUDITED_COLUMNS}


def _merge_specifications(existing: str | None, incoming: dict[str, Any]) -> str | None:
    merged: dict[str, Any] = {}
    if existing:
        try:
            loaded = json.loads(existing)
        except ValueError:
            loaded = {}
        if isinstance(loaded, dict):
            merged.update(loaded)
    merged.update(incoming)
    return json.dumps(merged, sort_keys=True, default=str) if merged else None


async def find_by_serial(db: AsyncSession, serial_number: str) -> Asset | None:
    stmt = select(Asset).where(Asset.serial_number == serial_number)
    return (await db.execute(stmt)).scalar_one_or_none()


async def find_by_tag(db: AsyncSession, asset_tag: str) -> Asset | None:
    stmt = select(Asset).where(Asset.asset_tag == asset_tag)
    return (await db.execute(stmt)).scalar_one_or_none()


async def _find_existing(db: AsyncSession, draft: AssetDraft) -> tuple[Asset | None, str | None]:
    """Serial number first; a tag we built ourselves never identifies an asset."""
    if draft.serial_number:
        asset = await find_by_serial(db, draft.serial_number)
        if asset is not None:
            return asset, "serial"
    if draft.asset_tag and not (draft.tag_generated or draft.tag_derived):
        asset = await find_by_tag(db, draft.asset_tag)
        if asset is not None:
            return asset, "tag"
    return None, None


async def _release_tag(db: AsyncSession, asset: Asset, incoming_tag: str, user_id: str | None) -> None:
    """Rename a different asset holding ``incoming_tag`` out of the way."""
    holder = await find_by_tag(db, incoming_tag)
    if holder is None or holder.id == asset.id:
        return
    renamed = superseded_tag(incoming_tag)
    logger.info("Renaming asset %s tag %s -> %s to free it for %s", holder.id, incoming_tag, renamed, asset.id)
    holder.asset_tag = renamed
    holder.updated_by_id = user_id
    record_activity(
        db,
        "asset",
        holder.id,
        "UPDATE",
        description=f"Asset tag superseded by import of serial {asset.serial_number}",
        changes={"asset_tag": {"from": incoming_tag, "to": renamed}},
        user_id=user_id,
    )
    # The rename must reach the database before the tag is reused.
    await db.flush()


async def _unique_tag(db: AsyncSession, base_tag: str) -> str:
    candidate = base_tag
    for _ in range(settings.import_tag_retry_limit + 1):
        if await find_by_tag(db, candidate) is None:
            return candidate
        logger.info("Asset tag %s is taken; regenerating", candidate)
        candidate = regenerate_tag(base_tag)
    raise TagCollisionError(
        f"Could not generate a unique asset tag from {base_tag} "
        f"after {settings.import_tag_retry_limit} attempts"
    )


async def _write_related(
    db: AsyncSession,
    asset: Asset,
    draft: AssetDraft,
    match: RuleMatch | None,
    options: ResolveOptions,
) -> None:
    if draft.custom_fields and options.field_index:
        values = custom_field_svc.resolve_field_values(options.field_index, draft.custom_fields)
        if values:
            await custom_field_svc.replace_values(db, asset.id, values)
    if match is not None:
        await rule_svc.replace_asset_category(db, asset.id, match.category_id)
    if options.track_presence and asset.serial_number:
        await mark_seen(db, asset.id, draft.source, asset.serial_number, datetime.now(timezone.utc))


async def resolve_once(
    db: AsyncSession,
    draft: AssetDraft,
    match: RuleMatch | None,
    options: ResolveOptions,
) -> Resolution:
    """One attempt inside the caller's transaction; the caller commits."""
    existing, matched_by = await _find_existing(db, draft)

    if existing is not None and options.policy == POLICY_SKIP:
        if matched_by == "serial":
            reason = f"Duplicate serial number: {draft.serial_number}"
        else:
            reason = f"Duplicate asset tag: {draft.asset_tag}"
        if matched_by == "serial" and options.track_presence:
            # A skipped row still counts as present in the snapshot.
            await mark_seen(db, existing.id, draft.source, existing.serial_number, datetime.now(timezone.utc))
        return Resolution(operation=None, asset_id=existing.id, asset_tag=existing.asset_tag, skip_reason=reason)

    values = draft.asset_values()

    if existing is None:
        values["asset_tag"] = await _unique_tag(db, draft.asset_tag)
        draft.asset_tag = values["asset_tag"]
        asset = Asset(
            **values,
            specifications=draft.specifications_blob(),
            created_by_id=options.user_id,
            updated_by_id=options.user_id,
        )
        db.add(asset)
        await db.flush()
        await _write_related(db, asset, draft, match, options)
        record_activity(
            db,
            "asset",
            asset.id,
            "CREATE",
            description=f"Imported from {draft.source}",
            changes=_diff({}, _snapshot(asset)),
            user_id=options.user_id,
        )
        return Resolution(operation=OP_CREATE, asset_id=asset.id, asset_tag=asset.asset_tag, status=asset.status)

    asset = existing
    before = _snapshot(asset)
    if draft.tag_generated:
        # Keep the established tag rather than a freshly generated one.
        values.pop("asset_tag", None)
    elif draft.tag_derived:
        derived = values.get("asset_tag")
        if not derived or asset.asset_tag == derived or (asset.asset_tag or "").startswith(derived + "-"):
            values.pop("asset_tag", None)
        else:
            values["asset_tag"] = await _unique_tag(db, derived)
    elif values.get("asset_tag") and values["asset_tag"] != asset.asset_tag:
        await _release_tag(db, asset, values["asset_tag"], options.user_id)

    decision = None
    if options.track_presence and "status" in values:
        decision = apply_reactivation_veto(
            asset.status, values["status"], draft.serial_number, options.allowed_reactivations
        )
        values["status"] = decision.status
        if decision.vetoed:
            draft.processing_notes.append("Reactivation not approved; asset stays retired")

    for key, value in values.items():
        setattr(asset, key, value)
    asset.specifications = _merge_specifications(asset.specifications, draft.specifications)
    asset.updated_by_id = options.user_id
    await db.flush()
    await _write_related(db, asset, draft, match, options)

    reactivated = bool(decision and decision.reactivated)
    changes = _diff(before, _snapshot(asset))
    record_activity(
        db,
        "asset",
        asset.id,
        "REACTIVATE" if reactivated else "UPDATE",
        description=f"{'Reactivated' if reactivated else 'Updated'} from {draft.source} import",
        changes=changes,
        user_id=options.user_id,
    )
    return Resolution(
        operation=OP_UPDATE,
        asset_id=asset.id,
        asset_tag=asset.asset_tag,
        status=asset.status,
        reactivated=reactivated,
        reactivation_vetoed=bool(decision and decision.vetoed),
    )


async def persist_draft(
    session_factory: async_sessionmaker[AsyncSession],
    draft: AssetDraft,
    match: RuleMatch | None,
    options: ResolveOptions,
) -> Resolution:
    """Resolve and persist one draft in its own transaction.

    A unique-constraint race with a concurrent row re-runs the whole
    resolution in a fresh transaction, up to the tag retry limit.
    """
    attempts = settings.import_tag_retry_limit + 1
    for attempt in range(1, attempts + 1):
        async with session_factory() as db:
            try:
                resolution = await resolve_once(db, draft, match, options)
                await db.commit()
                return resolution
            except IntegrityError as exc:
                await db.rollback()
                logger.warning(
                    "Integrity conflict persisting serial %s (attempt %d/%d): %s",
                    draft.serial_number, attempt, attempts, exc.orig,
                )
    raise TagCollisionError(
        f"Could not persist asset {draft.serial_number} after {attempts} attempts due to identifier conflicts"
    )

"""Presence reconciliation for full-snapshot sources.

Two phases per run. During row processing each persisted asset gets its
``(source, serial)`` link marked present with a fresh ``last_seen_at``.
After every batch has finished, :func:`sweep` marks links that were not
touched since the run started as absent and retires their assets, unless
another source still attests the asset or the caller asked to keep it.

Reactivation is computed naturally by the row pipeline and then vetoed
by :func:`apply_reactivation_veto` unless the serial number was approved.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models.asset import STATUS_RETIRED, Asset
from ..models.source_link import ExternalSourceLink
from ..models.sync_run import ImportSyncRun
from ..services.activity_svc import record_activity
from .errors import UnsupportedSourceError
from .sources import normalize_import_source

logger = logging.getLogger(__name__)

STATUS_DISPOSED = "DISPOSED"
# Assets in these states are never moved by the sweep.
_TERMINAL_STATUSES = (STATUS_RETIRED, STATUS_DISPOSED)


def is_snapshot_source(source_system: str | None) -> bool:
    return bool(source_system) and normalize_import_source(source_system) in settings.snapshot_sources


@dataclass(frozen=True)
class ReactivationDecision:
    status: str
    reactivated: bool = False
    vetoed: bool = False


def apply_reactivation_veto(
    previous_status: str | None,
    computed_status: str,
    serial_number: str | None,
    allowed_serials: frozenset[str],
) -> ReactivationDecision:
    """Honor a retired -> active transition only for approved serial numbers.

    An empty allow-list approves nothing.
    """
    if previous_status != STATUS_RETIRED or computed_status == STATUS_RETIRED:
        return ReactivationDecision(computed_status)
    if serial_number and serial_number.strip() in allowed_serials:
        return ReactivationDecision(computed_status, reactivated=True)
    return ReactivationDecision(STATUS_RETIRED, vetoed=True)


async def purge_orphan_links(db: AsyncSession) -> int:
    """Delete links whose external id no longer equals the asset's serial number."""
    stmt = (
        select(ExternalSourceLink.id)
        .join(Asset, Asset.id == ExternalSourceLink.asset_id)
        .where(or_(Asset.serial_number.is_(None), ExternalSourceLink.external_id != Asset.serial_number))
    )
    orphan_ids = list((await db.execute(stmt)).scalars().all())
    if orphan_ids:
        await db.execute(delete(ExternalSourceLink).where(ExternalSourceLink.id.in_(orphan_ids)))
        logger.warning("Purged %d orphaned source links", len(orphan_ids))
    await db.commit()
    return len(orphan_ids)


async def mark_seen(
    db: AsyncSession,
    asset_id: uuid.UUID,
    source_system: str,
    external_id: str,
    seen_at: datetime | None = None,
) -> ExternalSourceLink:
    """Upsert the presence link inside the caller's row transaction."""
    seen_at = seen_at or datetime.now(timezone.utc)
    stmt = select(ExternalSourceLink).where(
        ExternalSourceLink.source_system == source_system,
        ExternalSourceLink.external_id == external_id,
    )
    link = (await db.execute(stmt)).scalar_one_or_none()
    if link is None:
        link = ExternalSourceLink(
            asset_id=asset_id,
            source_system=source_system,
            external_id=external_id,
            last_seen_at=seen_at,
            is_present=True,
        )
        db.add(link)
    else:
        link.asset_id = asset_id
        link.last_seen_at = seen_at
        link.is_present = True
    return link


async def _attested_elsewhere(db: AsyncSession, asset_id: uuid.UUID, source_system: str) -> bool:
    stmt = (
        select(func.count())
        .select_from(ExternalSourceLink)
        .where(
            ExternalSourceLink.asset_id == asset_id,
            ExternalSourceLink.is_present.is_(True),
            ExternalSourceLink.source_system != source_system,
        )
    )
    return (await db.execute(stmt)).scalar_one() > 0


async def sweep(
    db: AsyncSession,
    run: ImportSyncRun,
    *,
    skip_asset_ids: Iterable[uuid.UUID] = (),
    keep_serials: Iterable[str] = (),
    user_id: str | None = None,
) -> list[Asset]:
    """Mark untouched links absent and retire their assets. Commits.

    Links whose serial is in ``keep_serials`` stay present: the row was in
    the snapshot even though it could not be persisted.
    """
    skip = set(skip_asset_ids)
    keep = set(keep_serials)
    stmt = select(ExternalSourceLink).where(
        ExternalSourceLink.source_system == run.source_system,
        ExternalSourceLink.is_present.is_(True),
        ExternalSourceLink.last_seen_at < run.started_at,
    )
    stale = [link for link in (await db.execute(stmt)).scalars().all() if link.external_id not in keep]
    for link in stale:
        link.is_present = False
    await db.flush()

    retired: list[Asset] = []
    for asset_id in dict.fromkeys(link.asset_id for link in stale):
        if asset_id in skip:
            logger.info("Sweep kept asset %s on caller request", asset_id)
            continue
        asset = await db.get(Asset, asset_id)
        if asset is None or asset.status in _TERMINAL_STATUSES:
            continue
        if await _attested_elsewhere(db, asset_id, run.source_system):
            continue
        previous = asset.status
        asset.status = STATUS_RETIRED
        asset.updated_by_id = user_id
        record_activity(
            db,
            "asset",
            asset.id,
            "RETIRE",
            description=f"Retired: no longer present in {run.source_system} snapshot",
            changes={"status": {"from": previous, "to": STATUS_RETIRED}, "sync_run_id": str(run.id)},
            user_id=user_id,
        )
        retired.append(asset)

    await db.commit()
    logger.info(
        "Sweep for %s: %d links absent, %d assets retired",
        run.source_system, len(stale), len(retired),
    )
    return retired


async def preview(db: AsyncSession, source_system: str, serial_numbers: Iterable[str | None]) -> dict:
    """Read-only forecast of what a full snapshot with these serials would change."""
    source_system = normalize_import_source(source_system)
    if not is_snapshot_source(source_system):
        raise UnsupportedSourceError(f"Source {source_system} does not produce full snapshots")

    raw = list(serial_numbers)
    incoming = [s.strip() for s in raw if s and s.strip()]
    incoming_set = set(incoming)
    warnings: list[str] = []

    blank = len(raw) - len(incoming)
    if blank:
        warnings.append(f"{blank} rows have no serial number and will be skipped")
    for serial, count in sorted(Counter(incoming).items()):
        if count > 1:
            warnings.append(f"Serial number {serial} appears {count} times in the snapshot")

    orphan_stmt = (
        select(func.count())
        .select_from(ExternalSourceLink)
        .join(Asset, Asset.id == ExternalSourceLink.asset_id)
        .where(or_(Asset.serial_number.is_(None), ExternalSourceLink.external_id != Asset.serial_number))
    )
    orphans = (await db.execute(orphan_stmt)).scalar_one()
    if orphans:
        warnings.append(f"{orphans} orphaned source links will be purged before import")

    link_stmt = (
        select(ExternalSourceLink, Asset)
        .join(Asset, Asset.id == ExternalSourceLink.asset_id)
        .where(
            ExternalSourceLink.source_system == source_system,
            ExternalSourceLink.is_present.is_(True),
            ExternalSourceLink.external_id == Asset.serial_number,
        )
        .order_by(Asset.asset_tag)
    )
    will_retire = []
    seen: set[uuid.UUID] = set()
    for link, asset in (await db.execute(link_stmt)).all():
        if link.external_id in incoming_set or asset.id in seen:
            continue
        if asset.status in _TERMINAL_STATUSES:
            continue
        if await _attested_elsewhere(db, asset.id, source_system):
            continue
        seen.add(asset.id)
        will_retire.append({
            "asset_id": str(asset.id),
            "asset_tag": asset.asset_tag,
            "serial_number": asset.serial_number,
        })

    will_reactivate = []
    if incoming_set:
        retired_stmt = (
            select(Asset)
            .where(Asset.status == STATUS_RETIRED, Asset.serial_number.in_(incoming_set))
            .order_by(Asset.asset_tag)
        )
        for asset in (await db.execute(retired_stmt)).scalars().all():
            will_reactivate.append({
                "asset_id": str(asset.id),
                "asset_tag": asset.asset_tag,
                "serial_number": asset.serial_number,
            })

    return {
        "source_system": source_system,
        "will_retire": will_retire,
        "will_reactivate": will_reactivate,
        "warnings": warnings,
    }

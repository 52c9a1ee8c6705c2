"""Import sync run audit records."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.sync_run import ImportSyncRun
from ..sync.errors import RunAlreadyFinishedError

RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_FAILED = "failed"


async def start_run(
    db: AsyncSession,
    source_system: str,
    *,
    is_full_snapshot: bool,
    initiated_by: str | None = None,
    session_id: str | None = None,
) -> ImportSyncRun:
    run = ImportSyncRun(
        source_system=source_system,
        is_full_snapshot=is_full_snapshot,
        initiated_by=initiated_by,
        session_id=session_id,
        status=RUN_RUNNING,
        started_at=datetime.now(timezone.utc),
    )
    db.add(run)
    await db.commit()
    await db.refresh(run)
    return run


async def finish_run(
    db: AsyncSession,
    run_id: uuid.UUID,
    *,
    status: str,
    stats: dict | None = None,
    error_message: str | None = None,
) -> ImportSyncRun:
    run = await db.get(ImportSyncRun, run_id)
    if run is None:
        raise LookupError(f"Import sync run {run_id} not found")
    if run.is_finished:
        raise RunAlreadyFinishedError(f"Import sync run {run_id} is already {run.status}")
    run.status = status
    run.stats_json = stats
    run.error_message = error_message
    run.finished_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(run)
    return run


async def get_run(db: AsyncSession, run_id: uuid.UUID) -> ImportSyncRun | None:
    return await db.get(ImportSyncRun, run_id)


async def list_runs(
    db: AsyncSession,
    *,
    source_system: str | None = None,
    limit: int = 50,
) -> list[ImportSyncRun]:
    stmt = select(ImportSyncRun)
    if source_system:
        stmt = stmt.where(ImportSyncRun.source_system == source_system.upper())
    stmt = stmt.order_by(ImportSyncRun.started_at.desc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())

"""Import API routes - run imports, preview lifecycle changes, live progress."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.responses import StreamingResponse

from ..config import settings
from ..database import get_db, get_session_factory
from ..models.asset import Asset
from ..schemas.imports import (
    AssetImportRequest,
    ImportResultOut,
    ImportRunOut,
    PreviewRequest,
    PreviewResponse,
    ResolveRequest,
)
from ..security import Actor, require_writer
from ..services import sync_run_svc
from ..sync import presence
from ..sync.directory import CachedDirectory, DirectoryUser, get_directory
from ..sync.engine import ImportEngine, ImportJob
from ..sync.errors import DraftValidationError, ImportPipelineError
from ..sync.locations import match_locations
from ..sync.progress import progress_store
from ..sync.transformer import ColumnMapping, transform_row

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/import", tags=["import"])

# Strong references so running imports are not garbage collected.
_running_imports: set[asyncio.Task] = set()


def _forget(task: asyncio.Task) -> None:
    _running_imports.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error("Import task ended with error: %s", task.exception())


def _mappings(items) -> list[ColumnMapping]:
    return [ColumnMapping(m.source_column, m.target_field, m.is_required) for m in items]


def _build_job(payload: AssetImportRequest, actor: Actor) -> ImportJob:
    users = {
        name.strip(): (
            DirectoryUser(
                id=u.id,
                display_name=u.display_name,
                office_location=u.office_location,
                email=u.email,
            )
            if u is not None
            else None
        )
        for name, u in payload.resolved_user_map.items()
    }
    return ImportJob(
        source=payload.source,
        rows=payload.rows,
        column_mappings=_mappings(payload.column_mappings),
        conflict_resolution=payload.conflict_resolution,
        session_id=payload.session_id,
        is_full_snapshot=payload.is_full_snapshot,
        skip_retire_asset_ids=list(payload.skip_retire_asset_ids),
        allowed_reactivations=list(payload.allowed_reactivations),
        resolved_user_map=users,
        resolved_location_map={k.strip(): v for k, v in payload.resolved_location_map.items()},
        user_id=actor.user_id,
    )


@router.post("/assets", response_model=ImportResultOut)
async def import_assets(
    payload: AssetImportRequest,
    actor: Actor = Depends(require_writer),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    directory: CachedDirectory = Depends(get_directory),
):
    """Run an import to completion. A client disconnect does not cancel the run."""
    engine = ImportEngine(session_factory, directory=directory)
    task = asyncio.create_task(engine.run(_build_job(payload, actor)))
    _running_imports.add(task)
    task.add_done_callback(_forget)
    try:
        result = await asyncio.shield(task)
    except ImportPipelineError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    return result.to_dict()


@router.post("/preview", response_model=PreviewResponse)
async def preview_import(
    payload: PreviewRequest,
    actor: Actor = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
):
    serials: list[str | None] = list(payload.serial_numbers)
    mappings = _mappings(payload.column_mappings)
    for index, row in enumerate(payload.rows):
        try:
            serials.append(transform_row(payload.source, row, mappings, index).serial_number)
        except DraftValidationError:
            serials.append(None)
    try:
        return await presence.preview(db, payload.source, serials)
    except ImportPipelineError as exc:
        raise HTTPException(status_code=400, detail=exc.message)


@router.post("/resolve")
async def resolve_payload(
    payload: ResolveRequest,
    actor: Actor = Depends(require_writer),
    db: AsyncSession = Depends(get_db),
    directory: CachedDirectory = Depends(get_directory),
):
    """Resolve usernames and locations and report serial-number conflicts up front."""
    try:
        users = await directory.resolve(payload.usernames)
    except httpx.HTTPError as exc:
        logger.error("Directory lookup failed: %s", exc)
        raise HTTPException(status_code=502, detail="Directory lookup failed")
    locations = await match_locations(db, payload.locations)

    conflicts = {}
    serials = {s.strip() for s in payload.serial_numbers if s and s.strip()}
    if serials:
        stmt = select(Asset).where(Asset.serial_number.in_(serials))
        for asset in (await db.execute(stmt)).scalars().all():
            conflicts[asset.serial_number] = {
                "id": str(asset.id),
                "asset_tag": asset.asset_tag,
                "serial_number": asset.serial_number,
            }

    return {
        "user_map": {name: (u.to_dict() if u else None) for name, u in users.items()},
        "location_map": {label: (str(loc) if loc else None) for label, loc in locations.items()},
        "conflicts": conflicts,
    }


@router.get("/progress/{session_id}")
async def progress_feed(session_id: str):
    """Server-Sent Events feed of a live import session."""
    if progress_store.get(session_id) is None:
        raise HTTPException(status_code=404, detail="Progress session not found")

    async def event_stream():
        while True:
            snapshot = progress_store.snapshot(session_id)
            if snapshot is None:
                break
            yield f"data: {json.dumps(snapshot)}\n\n"
            if snapshot["completed"]:
                await asyncio.sleep(settings.progress_close_delay_seconds)
                break
            await asyncio.sleep(settings.progress_poll_interval_seconds)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/progress/{session_id}/snapshot")
async def progress_snapshot(session_id: str):
    snapshot = progress_store.snapshot(session_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Progress session not found")
    return snapshot


@router.get("/runs", response_model=list[ImportRunOut])
async def list_import_runs(
    source: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    return await sync_run_svc.list_runs(db, source_system=source, limit=limit)


@router.get("/runs/{run_id}", response_model=ImportRunOut)
async def get_import_run(run_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    run = await sync_run_svc.get_run(db, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Import run not found")
    return run

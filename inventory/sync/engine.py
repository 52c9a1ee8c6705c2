"""Import engine - batch scheduler for the row pipeline plus run bookkeeping.

Rows are processed in fixed-size batches. Batches run strictly in order;
rows inside a batch run concurrently, each in its own session:

    transform -> (batch) resolve assignees -> finalize -> classify -> persist

After the last batch a full-snapshot run sweeps presence links for its
source. The ImportSyncRun record is finalized even when the run aborts.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..services import custom_field_svc, rule_svc, sync_run_svc
from . import presence
from .assignments import resolve_assignments
from .directory import CachedDirectory, DirectoryUser
from .draft import AssetDraft
from .errors import DraftValidationError, ImportPipelineError, UnsupportedSourceError
from .outcomes import FAILED, SUCCESS, ImportResult, RowOutcome
from .progress import ProgressSession, ProgressStore, progress_store
from .resolver import POLICY_OVERWRITE, RESOLUTION_POLICIES, ResolveOptions, persist_draft
from .rules import WorkloadClassifier
from .sources import normalize_import_source
from .transformer import ColumnMapping, finalize_draft, transform_row

logger = logging.getLogger(__name__)


@dataclass
class ImportJob:
    source: str | None
    rows: list[dict[str, Any]]
    column_mappings: list[ColumnMapping] = field(default_factory=list)
    conflict_resolution: str = POLICY_OVERWRITE
    session_id: str | None = None
    # None means "full snapshot if the source supports it".
    is_full_snapshot: bool | None = None
    skip_retire_asset_ids: list[uuid.UUID] = field(default_factory=list)
    allowed_reactivations: list[str] = field(default_factory=list)
    resolved_user_map: dict[str, DirectoryUser | None] = field(default_factory=dict)
    resolved_location_map: dict[str, uuid.UUID | None] = field(default_factory=dict)
    user_id: str | None = None


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, ImportPipelineError):
        return exc.message
    return str(exc) or exc.__class__.__name__


class ImportEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        directory: CachedDirectory | None = None,
        progress: ProgressStore | None = None,
        batch_size: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.directory = directory
        self.progress = progress if progress is not None else progress_store
        self.batch_size = max(1, batch_size or settings.import_batch_size)

    async def run(self, job: ImportJob) -> ImportResult:
        if job.conflict_resolution not in RESOLUTION_POLICIES:
            raise ImportPipelineError(f"Unknown conflict resolution policy: {job.conflict_resolution}")
        source_system = normalize_import_source(job.source)
        snapshot_capable = presence.is_snapshot_source(source_system)
        full_snapshot = snapshot_capable if job.is_full_snapshot is None else job.is_full_snapshot
        if full_snapshot and not snapshot_capable:
            raise UnsupportedSourceError(f"Source {source_system} does not produce full snapshots")

        session_id = job.session_id or uuid.uuid4().hex
        result = ImportResult(total=len(job.rows), session_id=session_id)
        progress = self.progress.start(session_id, len(job.rows))

        async with self.session_factory() as db:
            run = await sync_run_svc.start_run(
                db,
                source_system,
                is_full_snapshot=full_snapshot,
                initiated_by=job.user_id,
                session_id=session_id,
            )
        result.sync_run_id = progress.sync_run_id = str(run.id)
        logger.info(
            "Import run %s started: source=%s rows=%d full_snapshot=%s",
            run.id, source_system, len(job.rows), full_snapshot,
        )

        status, error = sync_run_svc.RUN_FAILED, "Import interrupted"
        try:
            classifier, options = await self._prepare(job, track_presence=snapshot_capable)
            batches = [job.rows[i:i + self.batch_size] for i in range(0, len(job.rows), self.batch_size)]
            offset = 0
            # Rows that were in the file but failed must not be retired.
            failed_serials: set[str] = set()
            for number, rows in enumerate(batches, 1):
                progress.current_item = f"Processing batch {number} of {len(batches)}"
                outcomes = await self._run_batch(job, rows, offset, classifier, options, progress)
                offset += len(rows)
                for outcome in outcomes:
                    result.add(outcome)
                    if outcome.status == FAILED and outcome.serial_number:
                        failed_serials.add(outcome.serial_number)
                progress.merge(outcomes)
                logger.info(
                    "Batch %d/%d done: %d of %d rows succeeded",
                    number, len(batches), sum(o.status == SUCCESS for o in outcomes), len(outcomes),
                )

            if full_snapshot:
                progress.current_item = "Retiring assets missing from snapshot"
                async with self.session_factory() as db:
                    retired = await presence.sweep(
                        db,
                        run,
                        skip_asset_ids=job.skip_retire_asset_ids,
                        keep_serials=failed_serials,
                        user_id=job.user_id,
                    )
                result.retired = [{"id": str(a.id), "asset_tag": a.asset_tag} for a in retired]
            status, error = sync_run_svc.RUN_COMPLETED, None
        except Exception as exc:
            error = _error_text(exc)
            logger.exception("Import run %s aborted", run.id)
            raise
        finally:
            async with self.session_factory() as db:
                await sync_run_svc.finish_run(db, run.id, status=status, stats=result.counts(), error_message=error)
            self.progress.complete(
                session_id, "Import Complete" if status == sync_run_svc.RUN_COMPLETED else "Import Failed"
            )

        logger.info(
            "Import run %s completed: %d created, %d updated, %d reactivated, %d retired, %d skipped, %d failed",
            run.id, len(result.created), len(result.updated), len(result.reactivated),
            len(result.retired), result.skipped, result.failed,
        )
        return result

    async def _prepare(self, job: ImportJob, *, track_presence: bool) -> tuple[WorkloadClassifier, ResolveOptions]:
        """Repair presence links and load the per-run read-only state."""
        async with self.session_factory() as db:
            await presence.purge_orphan_links(db)
            rules = await rule_svc.load_active_rules(db)
            fields = await custom_field_svc.list_active_fields(db)
        options = ResolveOptions(
            policy=job.conflict_resolution,
            user_id=job.user_id,
            track_presence=track_presence,
            allowed_reactivations=frozenset(s.strip() for s in job.allowed_reactivations if s and s.strip()),
            field_index=custom_field_svc.build_field_index(fields),
        )
        return WorkloadClassifier(rules), options

    async def _run_batch(
        self,
        job: ImportJob,
        rows: list[dict[str, Any]],
        offset: int,
        classifier: WorkloadClassifier,
        options: ResolveOptions,
        progress: ProgressSession,
    ) -> list[RowOutcome]:
        outcomes: dict[int, RowOutcome] = {}
        pending: list[tuple[int, dict[str, Any], AssetDraft]] = []

        for index, row in enumerate(rows, offset):
            try:
                draft = transform_row(job.source, row, job.column_mappings, index)
            except DraftValidationError as exc:
                outcomes[index] = RowOutcome.skip(index, row, exc.message)
            except Exception as exc:
                logger.exception("Row %d could not be transformed", index)
                outcomes[index] = RowOutcome.fail(index, row, _error_text(exc))
            else:
                pending.append((index, row, draft))

        if pending:
            try:
                async with self.session_factory() as db:
                    await resolve_assignments(
                        db,
                        [draft for _, _, draft in pending],
                        directory=self.directory,
                        user_overrides=job.resolved_user_map,
                        location_overrides=job.resolved_location_map,
                    )
            except Exception as exc:
                logger.exception("Batch preparation failed for rows %d-%d", offset, offset + len(rows) - 1)
                message = f"Batch failed: {_error_text(exc)}"
                for index, row, draft in pending:
                    outcomes[index] = RowOutcome.fail(index, row, message, draft.serial_number)
                pending = []

        processed = await asyncio.gather(*(
            self._process_row(index, row, draft, classifier, options, progress)
            for index, row, draft in pending
        ))
        for outcome in processed:
            outcomes[outcome.index] = outcome
        return [outcomes[i] for i in sorted(outcomes)]

    async def _process_row(
        self,
        index: int,
        row: dict[str, Any],
        draft: AssetDraft,
        classifier: WorkloadClassifier,
        options: ResolveOptions,
        progress: ProgressSession,
    ) -> RowOutcome:
        progress.current_item = f"Processing {draft.serial_number}"
        try:
            finalize_draft(draft)
            match = classifier.classify(draft)
            resolution = await persist_draft(self.session_factory, draft, match, options)
        except DraftValidationError as exc:
            return RowOutcome.skip(index, row, exc.message)
        except Exception as exc:
            logger.exception("Row %d (serial %s) failed", index, draft.serial_number)
            return RowOutcome.fail(index, row, _error_text(exc), draft.serial_number)

        if resolution.skipped:
            return RowOutcome.skip(index, row, resolution.skip_reason)
        for note in draft.processing_notes:
            logger.debug("Row %d: %s", index, note)
        return RowOutcome(
            index=index,
            status=SUCCESS,
            row=row,
            operation=resolution.operation,
            asset_id=resolution.asset_id,
            asset_tag=resolution.asset_tag,
            reactivated=resolution.reactivated,
            asset_type=draft.asset_type,
            asset_status=resolution.status,
            assignee=draft.assignee,
            location_id=draft.location_id,
            category=match,
        )

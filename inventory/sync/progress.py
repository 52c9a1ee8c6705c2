"""In-process live progress sessions for running imports."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..config import settings
from .outcomes import FAILED, SKIPPED, SUCCESS, ImportStatistics, RowOutcome

logger = logging.getLogger(__name__)


@dataclass
class ProgressSession:
    session_id: str
    total: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    current_item: str = "Starting import..."
    errors: list[dict[str, Any]] = field(default_factory=list)
    skipped_items: list[dict[str, Any]] = field(default_factory=list)
    statistics: ImportStatistics = field(default_factory=ImportStatistics)
    completed: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sync_run_id: str | None = None

    def merge(self, outcomes: list[RowOutcome]) -> None:
        for outcome in outcomes:
            self.processed += 1
            if outcome.status == SUCCESS:
                self.successful += 1
            elif outcome.status == SKIPPED:
                self.skipped += 1
                self.skipped_items.append({"index": outcome.index, "reason": outcome.reason})
            elif outcome.status == FAILED:
                self.failed += 1
                self.errors.append({"index": outcome.index, "error": outcome.reason})
            self.statistics.record(outcome)

    def to_dict(self) -> dict[str, Any]:
        percent = round(self.processed * 100 / self.total) if self.total else (100 if self.completed else 0)
        return {
            "session_id": self.session_id,
            "total": self.total,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "percent": percent,
            "current_item": self.current_item,
            "errors": list(self.errors),
            "skipped_items": list(self.skipped_items),
            "statistics": self.statistics.to_dict(),
            "completed": self.completed,
            "started_at": self.started_at.isoformat(),
            "sync_run_id": self.sync_run_id,
        }


class ProgressStore:
    """Owns every live session; completed sessions are reclaimed after a delay.

    All access happens on the event loop thread, so no locking is needed.
    """

    def __init__(self, retention_seconds: float | None = None) -> None:
        self.retention_seconds = (
            settings.progress_retention_seconds if retention_seconds is None else retention_seconds
        )
        self._sessions: dict[str, ProgressSession] = {}
        self._reclaim: dict[str, asyncio.TimerHandle] = {}

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def start(self, session_id: str, total: int) -> ProgressSession:
        handle = self._reclaim.pop(session_id, None)
        if handle is not None:
            handle.cancel()
        session = ProgressSession(session_id=session_id, total=total)
        self._sessions[session_id] = session
        return session

    def get(self, session_id: str) -> ProgressSession | None:
        return self._sessions.get(session_id)

    def snapshot(self, session_id: str) -> dict[str, Any] | None:
        session = self._sessions.get(session_id)
        return session.to_dict() if session else None

    def complete(self, session_id: str, current_item: str = "Import Complete") -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.completed = True
        session.current_item = current_item
        loop = asyncio.get_running_loop()
        self._reclaim[session_id] = loop.call_later(self.retention_seconds, self.discard, session_id)
        logger.debug("Progress session %s complete; reclaiming in %ss", session_id, self.retention_seconds)

    def discard(self, session_id: str) -> None:
        handle = self._reclaim.pop(session_id, None)
        if handle is not None:
            handle.cancel()
        self._sessions.pop(session_id, None)


progress_store = ProgressStore()

"""Per-row outcomes and the run-level result they aggregate into."""

from __future__ import annotations

import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from .rules import RuleMatch

SUCCESS = "success"
SKIPPED = "skipped"
FAILED = "failed"

OP_CREATE = "create"
OP_UPDATE = "update"


@dataclass(frozen=True)
class RowOutcome:
    index: int
    status: str
    row: dict[str, Any]
    operation: str | None = None
    asset_id: uuid.UUID | None = None
    asset_tag: str | None = None
    reactivated: bool = False
    reason: str | None = None
    asset_type: str | None = None
    asset_status: str | None = None
    assignee: str | None = None
    location_id: uuid.UUID | None = None
    category: RuleMatch | None = None
    serial_number: str | None = None

    @classmethod
    def skip(cls, index: int, row: dict[str, Any], reason: str) -> RowOutcome:
        return cls(index=index, status=SKIPPED, row=row, reason=reason)

    @classmethod
    def fail(cls, index: int, row: dict[str, Any], error: str, serial_number: str | None = None) -> RowOutcome:
        return cls(index=index, status=FAILED, row=row, reason=error, serial_number=serial_number)


@dataclass
class ImportStatistics:
    """Breakdowns shared by the live progress feed and the final result."""

    asset_type_breakdown: Counter = field(default_factory=Counter)
    status_breakdown: Counter = field(default_factory=Counter)
    unique_users: set[str] = field(default_factory=set)
    unique_locations: set[str] = field(default_factory=set)
    categorized_assets: list[dict[str, str]] = field(default_factory=list)

    def record(self, outcome: RowOutcome) -> None:
        if outcome.status != SUCCESS:
            return
        if outcome.asset_type:
            self.asset_type_breakdown[outcome.asset_type] += 1
        if outcome.asset_status:
            self.status_breakdown[outcome.asset_status] += 1
        if outcome.assignee:
            self.unique_users.add(outcome.assignee)
        if outcome.location_id:
            self.unique_locations.add(str(outcome.location_id))
        if outcome.category is not None:
            self.categorized_assets.append({
                "asset_tag": outcome.asset_tag or "",
                "category_name": outcome.category.category_name,
                "rule_name": outcome.category.rule_name,
            })

    def to_dict(self) -> dict[str, Any]:
        return {
            "categorized_assets": list(self.categorized_assets),
            "unique_users": sorted(self.unique_users),
            "unique_locations": sorted(self.unique_locations),
            "asset_type_breakdown": dict(sorted(self.asset_type_breakdown.items())),
            "status_breakdown": dict(sorted(self.status_breakdown.items())),
        }


@dataclass
class ImportResult:
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    skipped_items: list[dict[str, Any]] = field(default_factory=list)
    created: list[dict[str, str]] = field(default_factory=list)
    updated: list[dict[str, str]] = field(default_factory=list)
    reactivated: list[dict[str, str]] = field(default_factory=list)
    retired: list[dict[str, str]] = field(default_factory=list)
    statistics: ImportStatistics = field(default_factory=ImportStatistics)
    session_id: str | None = None
    sync_run_id: str | None = None

    def add(self, outcome: RowOutcome) -> None:
        if outcome.status == SUCCESS:
            self.successful += 1
            ref = {"id": str(outcome.asset_id), "asset_tag": outcome.asset_tag or ""}
            (self.created if outcome.operation == OP_CREATE else self.updated).append(ref)
            if outcome.reactivated:
                self.reactivated.append(ref)
        elif outcome.status == SKIPPED:
            self.skipped += 1
            self.skipped_items.append({"index": outcome.index, "reason": outcome.reason, "data": outcome.row})
        else:
            self.failed += 1
            self.errors.append({"index": outcome.index, "error": outcome.reason, "data": outcome.row})
        self.statistics.record(outcome)

    def counts(self) -> dict[str, int]:
        return {
            "total": self.total,
            "created": len(self.created),
            "updated": len(self.updated),
            "reactivated": len(self.reactivated),
            "retired": len(self.retired),
            "failed": self.failed,
            "skipped": self.skipped,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "skipped_items": list(self.skipped_items),
            "created": list(self.created),
            "updated": list(self.updated),
            "reactivated": list(self.reactivated),
            "retired": list(self.retired),
            "statistics": self.statistics.to_dict(),
            "session_id": self.session_id,
            "sync_run_id": self.sync_run_id,
        }

"""Tests for live progress sessions and row outcome aggregation."""

from __future__ import annotations

import asyncio
import uuid

import pytest

from inventory.sync.outcomes import OP_CREATE, OP_UPDATE, SUCCESS, ImportResult, RowOutcome
from inventory.sync.progress import ProgressStore
from inventory.sync.rules import RuleMatch


def success(index, tag, op=OP_CREATE, **kwargs):
    return RowOutcome(
        index=index,
        status=SUCCESS,
        row={"n": index},
        operation=op,
        asset_id=uuid.uuid4(),
        asset_tag=tag,
        **kwargs,
    )


def test_merge_and_snapshot():
    store = ProgressStore(retention_seconds=60)
    store.start("s1", total=4)
    store.get("s1").merge([
        success(0, "LT-1", asset_type="LAPTOP", asset_status="ASSIGNED", assignee="aad-jdoe"),
        RowOutcome.skip(1, {"n": 1}, "Missing serial number"),
        RowOutcome.fail(2, {"n": 2}, "Batch failed: boom"),
    ])

    snap = store.snapshot("s1")
    assert snap["processed"] == 3
    assert snap["successful"] == 1
    assert snap["skipped"] == 1
    assert snap["failed"] == 1
    assert snap["percent"] == 75
    assert snap["current_item"] == "Starting import..."
    assert snap["completed"] is False
    assert snap["skipped_items"] == [{"index": 1, "reason": "Missing serial number"}]
    assert snap["errors"] == [{"index": 2, "error": "Batch failed: boom"}]
    assert snap["statistics"]["asset_type_breakdown"] == {"LAPTOP": 1}
    assert snap["statistics"]["unique_users"] == ["aad-jdoe"]


def test_unknown_session():
    store = ProgressStore(retention_seconds=60)
    assert store.get("nope") is None
    assert store.snapshot("nope") is None
    assert "nope" not in store
    store.complete("nope")
    store.discard("nope")


@pytest.mark.asyncio
async def test_completed_session_is_reclaimed_after_retention():
    store = ProgressStore(retention_seconds=0.01)
    store.start("s1", total=0)
    store.complete("s1")

    snap = store.snapshot("s1")
    assert snap["completed"] is True
    assert snap["current_item"] == "Import Complete"
    assert snap["percent"] == 100

    await asyncio.sleep(0.05)
    assert "s1" not in store
    assert len(store) == 0


@pytest.mark.asyncio
async def test_restart_cancels_pending_reclaim():
    store = ProgressStore(retention_seconds=0.01)
    store.start("s1", total=2)
    store.complete("s1", current_item="Import Failed")
    store.start("s1", total=5)

    await asyncio.sleep(0.05)
    session = store.get("s1")
    assert session is not None
    assert session.total == 5
    assert session.completed is False


def test_import_result_aggregation():
    category = RuleMatch(uuid.uuid4(), "Engineering", "High memory")
    result = ImportResult(total=5)
    result.add(success(0, "LT-1", asset_type="LAPTOP", asset_status="ASSIGNED", category=category))
    result.add(success(1, "LT-2", op=OP_UPDATE, reactivated=True, asset_type="LAPTOP", asset_status="AVAILABLE"))
    result.add(success(2, "DT-1", op=OP_UPDATE, asset_type="DESKTOP", asset_status="AVAILABLE"))
    result.add(RowOutcome.skip(3, {"n": 3}, "Duplicate serial number: X"))
    result.add(RowOutcome.fail(4, {"n": 4}, "boom"))
    result.retired.append({"id": str(uuid.uuid4()), "asset_tag": "OLD-1"})

    assert result.counts() == {
        "total": 5,
        "created": 1,
        "updated": 2,
        "reactivated": 1,
        "retired": 1,
        "failed": 1,
        "skipped": 1,
    }
    data = result.to_dict()
    assert data["successful"] == 3
    assert [r["asset_tag"] for r in data["reactivated"]] == ["LT-2"]
    assert data["skipped_items"] == [{"index": 3, "reason": "Duplicate serial number: X", "data": {"n": 3}}]
    assert data["errors"] == [{"index": 4, "error": "boom", "data": {"n": 4}}]
    assert data["statistics"]["asset_type_breakdown"] == {"DESKTOP": 1, "LAPTOP": 2}
    assert data["statistics"]["status_breakdown"] == {"ASSIGNED": 1, "AVAILABLE": 2}
    assert data["statistics"]["categorized_assets"] == [
        {"asset_tag": "LT-1", "category_name": "Engineering", "rule_name": "High memory"}
    ]

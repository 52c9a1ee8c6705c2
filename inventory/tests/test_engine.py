"""End-to-end tests for the import engine against a file-backed SQLite database."""

from __future__ import annotations

import uuid

import httpx
import pytest
from sqlalchemy import func, select

from inventory.models.asset import Asset
from inventory.models.workload import WorkloadCategory, WorkloadCategoryRule
from inventory.services import rule_svc, sync_run_svc
from inventory.sync import presence
from inventory.sync.directory import CachedDirectory, DirectoryService, HttpDirectoryService
from inventory.sync.engine import ImportEngine, ImportJob
from inventory.sync.errors import ImportPipelineError, RunAlreadyFinishedError, UnsupportedSourceError
from inventory.sync.resolver import find_by_serial
from inventory.sync.transformer import ColumnMapping


def ninja(serial, user="", name=None):
    return {
        "Display Name": name or f"PC-{serial}",
        "Role": "WINDOWS_LAPTOP",
        "Serial Number": serial,
        "Manufacturer": "Dell",
        "Model": "Latitude 5440",
        "RAM": "15.8",
        "Last LoggedIn User": user,
    }


@pytest.fixture
def engine_factory(session_factory, fake_directory, progress):
    def build(directory=None, batch_size=None):
        return ImportEngine(
            session_factory,
            directory=directory or CachedDirectory(fake_directory),
            progress=progress,
            batch_size=batch_size,
        )
    return build


async def status_of(session_factory, serial):
    async with session_factory() as s:
        return (await find_by_serial(s, serial)).status


async def asset_count(session_factory):
    async with session_factory() as s:
        return (await s.execute(select(func.count()).select_from(Asset))).scalar_one()


def tags(refs):
    return sorted(ref["asset_tag"] for ref in refs)


@pytest.mark.asyncio
async def test_full_snapshot_retires_missing_assets(engine_factory, session_factory):
    engine = engine_factory()
    first = await engine.run(ImportJob(source="ninjaone", rows=[ninja("A"), ninja("B"), ninja("C")]))
    assert tags(first.created) == ["PC-A", "PC-B", "PC-C"]
    assert first.retired == []

    second = await engine.run(ImportJob(source="ninjaone", rows=[ninja("A"), ninja("C")]))
    assert tags(second.updated) == ["PC-A", "PC-C"]
    assert tags(second.retired) == ["PC-B"]
    assert await status_of(session_factory, "B") == "RETIRED"
    assert await status_of(session_factory, "A") == "AVAILABLE"

    async with session_factory() as s:
        run = await sync_run_svc.get_run(s, uuid.UUID(second.sync_run_id))
    assert run.status == "completed"
    assert run.is_full_snapshot is True
    assert run.finished_at is not None
    assert run.stats_json == {
        "total": 2, "created": 0, "updated": 2, "reactivated": 0, "retired": 1, "failed": 0, "skipped": 0,
    }


@pytest.mark.asyncio
async def test_reimport_is_idempotent(engine_factory, session_factory):
    engine = engine_factory()
    rows = [ninja("A"), ninja("B"), ninja("C")]
    await engine.run(ImportJob(source="ninjaone", rows=rows))
    again = await engine.run(ImportJob(source="ninjaone", rows=rows))

    assert again.created == []
    assert len(again.updated) == 3
    assert again.retired == [] and again.reactivated == []
    assert await asset_count(session_factory) == 3


@pytest.mark.asyncio
async def test_partial_run_never_retires(engine_factory, session_factory):
    engine = engine_factory()
    await engine.run(ImportJob(source="ninjaone", rows=[ninja("A"), ninja("B")]))
    partial = await engine.run(ImportJob(source="ninjaone", rows=[ninja("A")], is_full_snapshot=False))

    assert partial.retired == []
    assert await status_of(session_factory, "B") == "AVAILABLE"


@pytest.mark.asyncio
async def test_skip_retire_list(engine_factory, session_factory):
    engine = engine_factory()
    first = await engine.run(ImportJob(source="ninjaone", rows=[ninja("A"), ninja("B")]))
    keep = next(uuid.UUID(ref["id"]) for ref in first.created if ref["asset_tag"] == "PC-B")

    second = await engine.run(ImportJob(source="ninjaone", rows=[ninja("A")], skip_retire_asset_ids=[keep]))
    assert second.retired == []
    assert await status_of(session_factory, "B") == "AVAILABLE"


@pytest.mark.asyncio
async def test_reactivation_requires_approval(engine_factory, session_factory):
    engine = engine_factory()
    await engine.run(ImportJob(source="ninjaone", rows=[ninja("A"), ninja("B")]))
    await engine.run(ImportJob(source="ninjaone", rows=[ninja("A")]))
    assert await status_of(session_factory, "B") == "RETIRED"

    vetoed = await engine.run(ImportJob(source="ninjaone", rows=[ninja("A"), ninja("B")]))
    assert vetoed.reactivated == []
    assert await status_of(session_factory, "B") == "RETIRED"

    approved = await engine.run(
        ImportJob(source="ninjaone", rows=[ninja("A"), ninja("B")], allowed_reactivations=["B"])
    )
    assert tags(approved.reactivated) == ["PC-B"]
    assert await status_of(session_factory, "B") == "AVAILABLE"


@pytest.mark.asyncio
async def test_asset_attested_by_another_source_survives(engine_factory, session_factory):
    engine = engine_factory()
    await engine.run(ImportJob(source="ninjaone", rows=[ninja("S1"), ninja("S2")]))
    servers = await engine.run(ImportJob(
        source="ninjaone-servers",
        rows=[{"Display Name": "CAL-DC01", "Role": "WINDOWS_SERVER", "Serial Number": "S1"}],
    ))
    assert tags(servers.updated) == ["CAL-DC01"]

    result = await engine.run(ImportJob(source="ninjaone", rows=[ninja("S2")]))
    assert result.retired == []
    assert await status_of(session_factory, "S1") == "ASSIGNED"


@pytest.mark.asyncio
async def test_assignee_and_location_resolution(engine_factory, calgary):
    result = await engine_factory().run(ImportJob(source="ninjaone", rows=[ninja("A", user="CORP\\jdoe")]))

    stats = result.to_dict()["statistics"]
    assert stats["unique_users"] == ["aad-jdoe"]
    assert stats["unique_locations"] == [str(calgary.id)]
    assert stats["status_breakdown"] == {"ASSIGNED": 1}
    assert stats["asset_type_breakdown"] == {"LAPTOP": 1}


class UnreachableDirectory(DirectoryService):
    async def resolve_by_sam_account(self, names):
        raise httpx.ConnectError("directory unreachable")

    async def resolve_by_display_name(self, names):
        raise httpx.ConnectError("directory unreachable")


@pytest.mark.asyncio
async def test_batch_failure_is_contained(engine_factory, session_factory, progress):
    engine = engine_factory(directory=CachedDirectory(UnreachableDirectory()), batch_size=2)
    rows = [ninja("A", user="jdoe"), {"Display Name": "NO-SERIAL", "Role": "WINDOWS_LAPTOP"}, ninja("C"), ninja("D")]
    result = await engine.run(ImportJob(source="ninjaone", rows=rows, session_id="batch-test"))

    assert result.failed == 1
    assert result.errors[0]["index"] == 0
    assert result.errors[0]["error"] == "Batch failed: directory unreachable"
    assert result.skipped_items == [{"index": 1, "reason": "Missing serial number", "data": rows[1]}]
    assert tags(result.created) == ["PC-C", "PC-D"]
    assert await asset_count(session_factory) == 2

    snap = progress.snapshot("batch-test")
    assert snap["completed"] is True
    assert snap["current_item"] == "Import Complete"
    assert (snap["processed"], snap["successful"], snap["failed"], snap["skipped"]) == (4, 2, 1, 1)


@pytest.mark.asyncio
async def test_directory_outage_does_not_retire_assets_in_the_file(engine_factory, session_factory):
    await engine_factory().run(ImportJob(source="ninjaone", rows=[ninja("A", user="jdoe")]))

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(503, json={"error": "unavailable"})),
        base_url="https://graph.test/v1.0",
    )
    async with client:
        directory = CachedDirectory(HttpDirectoryService(client=client, email_domains=[]))
        result = await engine_factory(directory=directory).run(
            ImportJob(source="ninjaone", rows=[ninja("A", user="jdoe")])
        )

    assert result.failed == 0
    assert result.retired == []
    assert tags(result.updated) == ["PC-A"]
    assert await status_of(session_factory, "A") != "RETIRED"


@pytest.mark.asyncio
async def test_failed_rows_are_kept_by_the_sweep(engine_factory, session_factory):
    await engine_factory().run(ImportJob(source="ninjaone", rows=[ninja("A", user="jdoe"), ninja("B")]))

    engine = engine_factory(directory=CachedDirectory(UnreachableDirectory()))
    result = await engine.run(ImportJob(source="ninjaone", rows=[ninja("A", user="jdoe"), ninja("B")]))

    assert result.failed == 2
    assert result.retired == []
    assert await status_of(session_factory, "A") != "RETIRED"
    assert await status_of(session_factory, "B") == "AVAILABLE"


@pytest.mark.asyncio
async def test_first_matching_rule_by_priority(db, engine_factory, session_factory):
    general = WorkloadCategory(name="General")
    engineering = WorkloadCategory(name="Engineering")
    retired_category = WorkloadCategory(name="Legacy", is_active=False)
    db.add_all([general, engineering, retired_category])
    await db.flush()
    db.add_all([
        WorkloadCategoryRule(category_id=general.id, priority=20, source_field="make", operator="=", value="dell"),
        WorkloadCategoryRule(
            category_id=engineering.id, priority=10, source_field="specifications.ram", operator=">=",
            value="16", description="16 GB or more",
        ),
        WorkloadCategoryRule(category_id=retired_category.id, priority=1, source_field="make", operator="=", value="dell"),
        WorkloadCategoryRule(
            category_id=general.id, priority=0, source_field="make", operator="=", value="dell", is_active=False
        ),
    ])
    await db.commit()

    result = await engine_factory().run(ImportJob(source="ninjaone", rows=[ninja("A")]))

    assert result.to_dict()["statistics"]["categorized_assets"] == [
        {"asset_tag": "PC-A", "category_name": "Engineering", "rule_name": "16 GB or more"}
    ]
    async with session_factory() as s:
        asset = await find_by_serial(s, "A")
        assert await rule_svc.get_asset_category_ids(s, asset.id) == [engineering.id]


@pytest.mark.asyncio
async def test_duplicate_serials_in_one_batch_create_one_asset(engine_factory, session_factory):
    rows = [{"Serial": "DUP", "Model": "First"}, {"Serial": "DUP", "Model": "Second"}]
    mappings = [ColumnMapping("Serial", "serial_number"), ColumnMapping("Model", "model")]
    result = await engine_factory().run(ImportJob(source="bulk-upload", rows=rows, column_mappings=mappings))

    assert result.failed == 0
    assert len(result.created) == 1
    assert len(result.updated) == 1
    assert await asset_count(session_factory) == 1


@pytest.mark.asyncio
async def test_one_owner_with_several_phones(engine_factory, session_factory):
    def phone(imei):
        return {"Subscriber Name": "Jane Doe", "Device Name": "IPHONE 15 128GB", "IMEI": imei}

    rows = [phone("111111111111234"), phone("222222222221234")]
    engine = engine_factory()
    first = await engine.run(ImportJob(source="telus", rows=rows))

    assert first.failed == 0
    assert len(first.created) == 2
    assert await asset_count(session_factory) == 2
    first_tags = tags(first.created)
    assert len(set(first_tags)) == 2
    assert all(tag.startswith("PH-Jane Doe-1234") for tag in first_tags)

    again = await engine.run(ImportJob(source="telus", rows=rows))
    assert again.created == []
    assert tags(again.updated) == first_tags
    assert again.retired == []
    assert await asset_count(session_factory) == 2


@pytest.mark.asyncio
async def test_skip_policy_reports_duplicates(engine_factory, session_factory):
    engine = engine_factory()
    await engine.run(ImportJob(source="ninjaone", rows=[ninja("A")]))
    result = await engine.run(ImportJob(source="ninjaone", rows=[ninja("A")], conflict_resolution="skip"))

    assert result.skipped == 1
    assert result.skipped_items[0]["reason"] == "Duplicate serial number: A"
    assert result.retired == []
    assert await status_of(session_factory, "A") == "AVAILABLE"


@pytest.mark.asyncio
async def test_non_snapshot_source_cannot_run_full_snapshot(engine_factory, session_factory):
    engine = engine_factory()
    with pytest.raises(UnsupportedSourceError):
        await engine.run(ImportJob(source="bgc-template", rows=[{"Service Tag": "S1"}], is_full_snapshot=True))

    async with session_factory() as s:
        assert await sync_run_svc.list_runs(s) == []


@pytest.mark.asyncio
async def test_non_snapshot_source_defaults_to_partial(engine_factory, session_factory):
    result = await engine_factory().run(ImportJob(source="bgc-template", rows=[{"Service Tag": "S1"}]))

    async with session_factory() as s:
        run = await sync_run_svc.get_run(s, uuid.UUID(result.sync_run_id))
    assert run.source_system == "EXCEL"
    assert run.is_full_snapshot is False
    assert len(result.created) == 1


@pytest.mark.asyncio
async def test_unknown_policy_is_rejected(engine_factory):
    with pytest.raises(ImportPipelineError, match="Unknown conflict resolution policy"):
        await engine_factory().run(ImportJob(source="ninjaone", rows=[ninja("A")], conflict_resolution="merge"))


@pytest.mark.asyncio
async def test_run_is_finalized_as_failed_when_sweep_breaks(engine_factory, session_factory, progress, monkeypatch):
    async def broken_sweep(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(presence, "sweep", broken_sweep)
    with pytest.raises(RuntimeError):
        await engine_factory().run(ImportJob(source="ninjaone", rows=[ninja("A")], session_id="fail-test"))

    async with session_factory() as s:
        (run,) = await sync_run_svc.list_runs(s, source_system="ninjaone")
    assert run.status == "failed"
    assert run.error_message == "disk full"
    assert run.finished_at is not None
    assert run.stats_json["created"] == 1
    assert progress.snapshot("fail-test")["current_item"] == "Import Failed"


@pytest.mark.asyncio
async def test_finished_run_is_immutable(db):
    run = await sync_run_svc.start_run(db, "NINJAONE", is_full_snapshot=True, initiated_by="u1")
    await sync_run_svc.finish_run(db, run.id, status=sync_run_svc.RUN_COMPLETED, stats={"total": 0})

    with pytest.raises(RunAlreadyFinishedError):
        await sync_run_svc.finish_run(db, run.id, status=sync_run_svc.RUN_FAILED)
    with pytest.raises(LookupError):
        await sync_run_svc.finish_run(db, uuid.uuid4(), status=sync_run_svc.RUN_FAILED)

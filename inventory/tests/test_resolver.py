"""Tests for identifier resolution and per-row persistence."""

from __future__ import annotations

import json
import re

import pytest
from sqlalchemy import select

from inventory.models.activity import Activity
from inventory.models.custom_field import CustomField
from inventory.models.source_link import ExternalSourceLink
from inventory.models.workload import WorkloadCategory
from inventory.services import custom_field_svc, rule_svc
from inventory.sync import resolver
from inventory.sync.draft import AssetDraft
from inventory.sync.errors import TagCollisionError
from inventory.sync.resolver import POLICY_SKIP, ResolveOptions, find_by_serial, find_by_tag, persist_draft
from inventory.sync.rules import RuleMatch


def laptop(serial, tag="LT-100", *, generated=False, source="EXCEL", **kwargs):
    values = dict(
        index=0,
        source=source,
        serial_number=serial,
        asset_tag=tag,
        tag_generated=generated,
        asset_type="LAPTOP",
        status="AVAILABLE",
        condition="GOOD",
        make="Dell",
        model="Latitude 5440",
    )
    values.update(kwargs)
    return AssetDraft(**values)


async def load(session_factory, serial):
    async with session_factory() as s:
        return await find_by_serial(s, serial)


async def activities(session_factory, asset_id, action=None):
    async with session_factory() as s:
        stmt = select(Activity).where(Activity.entity_id == asset_id)
        if action:
            stmt = stmt.where(Activity.action == action)
        return list((await s.execute(stmt)).scalars().all())


@pytest.mark.asyncio
async def test_create(session_factory):
    resolution = await persist_draft(
        session_factory, laptop("S1", specifications={"ram": "16 GB"}), None, ResolveOptions(user_id="u1")
    )

    assert resolution.operation == "create"
    assert resolution.asset_tag == "LT-100"
    assert resolution.status == "AVAILABLE"

    asset = await load(session_factory, "S1")
    assert asset.id == resolution.asset_id
    assert asset.source == "EXCEL"
    assert asset.created_by_id == "u1"
    assert json.loads(asset.specifications) == {"ram": "16 GB"}

    (entry,) = await activities(session_factory, asset.id)
    assert entry.action == "CREATE"
    assert entry.entity_type == "asset"
    assert entry.user_id == "u1"
    assert entry.changes_json["serial_number"] == {"from": None, "to": "S1"}


@pytest.mark.asyncio
async def test_skip_policy_reports_serial_duplicates(session_factory):
    await persist_draft(session_factory, laptop("S1"), None, ResolveOptions())
    resolution = await persist_draft(
        session_factory, laptop("S1", "LT-200", model="Changed"), None, ResolveOptions(policy=POLICY_SKIP)
    )

    assert resolution.skipped
    assert resolution.skip_reason == "Duplicate serial number: S1"
    assert (await load(session_factory, "S1")).model == "Latitude 5440"


@pytest.mark.asyncio
async def test_skip_policy_reports_tag_duplicates(session_factory):
    await persist_draft(session_factory, laptop("S1"), None, ResolveOptions())
    resolution = await persist_draft(session_factory, laptop("S2"), None, ResolveOptions(policy=POLICY_SKIP))

    assert resolution.skip_reason == "Duplicate asset tag: LT-100"
    assert await load(session_factory, "S2") is None


@pytest.mark.asyncio
async def test_generated_tag_never_matches_and_is_regenerated(session_factory):
    await persist_draft(session_factory, laptop("S1"), None, ResolveOptions())
    resolution = await persist_draft(
        session_factory, laptop("S2", generated=True), None, ResolveOptions(policy=POLICY_SKIP)
    )

    assert resolution.operation == "create"
    assert re.match(r"^LT-100-[A-Z0-9]{3}$", resolution.asset_tag)
    assert (await load(session_factory, "S2")).asset_tag == resolution.asset_tag


@pytest.mark.asyncio
async def test_update_by_serial_records_diff(session_factory):
    created = await persist_draft(session_factory, laptop("S1"), None, ResolveOptions())
    resolution = await persist_draft(
        session_factory, laptop("S1", "LT-101", model="Precision 5680"), None, ResolveOptions(user_id="u2")
    )

    assert resolution.operation == "update"
    assert resolution.asset_id == created.asset_id
    asset = await load(session_factory, "S1")
    assert asset.asset_tag == "LT-101"
    assert asset.model == "Precision 5680"
    assert asset.updated_by_id == "u2"

    (update,) = await activities(session_factory, asset.id, "UPDATE")
    assert update.action == "UPDATE"
    assert update.changes_json == {
        "asset_tag": {"from": "LT-100", "to": "LT-101"},
        "model": {"from": "Latitude 5440", "to": "Precision 5680"},
    }


@pytest.mark.asyncio
async def test_update_by_tag_when_serial_is_new(session_factory):
    created = await persist_draft(session_factory, laptop("S1"), None, ResolveOptions())
    resolution = await persist_draft(session_factory, laptop("S1-REPLACED"), None, ResolveOptions())

    assert resolution.operation == "update"
    assert resolution.asset_id == created.asset_id
    assert await load(session_factory, "S1") is None
    assert (await load(session_factory, "S1-REPLACED")).asset_tag == "LT-100"


@pytest.mark.asyncio
async def test_incoming_tag_is_released_from_other_asset(session_factory):
    first = await persist_draft(session_factory, laptop("S1", "LT-100"), None, ResolveOptions())
    second = await persist_draft(session_factory, laptop("S2", "LT-200"), None, ResolveOptions())

    resolution = await persist_draft(session_factory, laptop("S1", "LT-200"), None, ResolveOptions(user_id="u3"))

    assert resolution.asset_id == first.asset_id
    assert resolution.asset_tag == "LT-200"
    displaced = await load(session_factory, "S2")
    assert displaced.id == second.asset_id
    assert re.match(r"^LT-200-SUPERSEDED-[A-Z0-9]{4}$", displaced.asset_tag)

    (rename,) = await activities(session_factory, displaced.id, "UPDATE")
    assert rename.action == "UPDATE"
    assert rename.changes_json["asset_tag"]["from"] == "LT-200"
    assert rename.user_id == "u3"


@pytest.mark.asyncio
async def test_generated_tag_does_not_replace_established_tag(session_factory):
    await persist_draft(session_factory, laptop("S1", "LT-100"), None, ResolveOptions())
    resolution = await persist_draft(
        session_factory, laptop("S1", "LT-555555-ABC-001", generated=True), None, ResolveOptions()
    )

    assert resolution.operation == "update"
    assert resolution.asset_tag == "LT-100"
    async with session_factory() as s:
        assert await find_by_tag(s, "LT-555555-ABC-001") is None


def phone(serial, tag):
    return laptop(serial, tag, tag_derived=True, asset_type="PHONE")


@pytest.mark.asyncio
async def test_derived_tag_never_matches_another_asset(session_factory):
    first = await persist_draft(session_factory, phone("IMEI-1", "PH-Jane Doe-1234"), None, ResolveOptions())
    second = await persist_draft(session_factory, phone("IMEI-2", "PH-Jane Doe-1234"), None, ResolveOptions())

    assert second.operation == "create"
    assert second.asset_id != first.asset_id
    assert re.match(r"^PH-Jane Doe-1234-[A-Z0-9]{3}$", second.asset_tag)
    assert (await load(session_factory, "IMEI-1")).asset_tag == "PH-Jane Doe-1234"

    again = await persist_draft(session_factory, phone("IMEI-2", "PH-Jane Doe-1234"), None, ResolveOptions())
    assert again.asset_tag == second.asset_tag

    renamed = await persist_draft(session_factory, phone("IMEI-1", "PH-Sam Smith-1234"), None, ResolveOptions())
    assert renamed.asset_id == first.asset_id
    assert renamed.asset_tag == "PH-Sam Smith-1234"


@pytest.mark.asyncio
async def test_tag_collision_after_retry_limit(session_factory, monkeypatch):
    await persist_draft(session_factory, laptop("S1", "LT-100"), None, ResolveOptions())
    monkeypatch.setattr(resolver, "regenerate_tag", lambda base: base)

    with pytest.raises(TagCollisionError):
        await persist_draft(session_factory, laptop("S2", "LT-100", generated=True), None, ResolveOptions())
    assert await load(session_factory, "S2") is None


@pytest.mark.asyncio
async def test_specifications_are_merged(session_factory):
    await persist_draft(
        session_factory, laptop("S1", specifications={"ram": "8 GB", "cpu": "i5"}), None, ResolveOptions()
    )
    await persist_draft(session_factory, laptop("S1", specifications={"ram": "16 GB"}), None, ResolveOptions())

    asset = await load(session_factory, "S1")
    assert json.loads(asset.specifications) == {"cpu": "i5", "ram": "16 GB"}


@pytest.mark.asyncio
async def test_custom_fields_and_category(db, session_factory):
    cost_centre = CustomField(name="Cost Centre")
    engineering = WorkloadCategory(name="Engineering")
    finance = WorkloadCategory(name="Finance")
    db.add_all([cost_centre, engineering, finance])
    await db.commit()

    options = ResolveOptions(field_index=custom_field_svc.build_field_index([cost_centre]))
    draft = laptop("S1", custom_fields={"cost centre": "CC-10", "unknown": "dropped"})
    created = await persist_draft(
        session_factory, draft, RuleMatch(engineering.id, "Engineering", "rule-a"), options
    )
    await persist_draft(
        session_factory,
        laptop("S1", custom_fields={"Cost Centre": "CC-20"}),
        RuleMatch(finance.id, "Finance", "rule-b"),
        options,
    )

    async with session_factory() as s:
        assert await custom_field_svc.get_values_for_asset(s, created.asset_id) == {cost_centre.id: "CC-20"}
        assert await rule_svc.get_asset_category_ids(s, created.asset_id) == [finance.id]


@pytest.mark.asyncio
async def test_unmatched_update_keeps_existing_category(db, session_factory):
    engineering = WorkloadCategory(name="Engineering")
    db.add(engineering)
    await db.commit()

    created = await persist_draft(
        session_factory, laptop("S1"), RuleMatch(engineering.id, "Engineering", "rule-a"), ResolveOptions()
    )
    await persist_draft(session_factory, laptop("S1", model="Precision 5680"), None, ResolveOptions())

    async with session_factory() as s:
        assert await rule_svc.get_asset_category_ids(s, created.asset_id) == [engineering.id]


@pytest.mark.asyncio
async def test_presence_link_written_when_tracking(session_factory):
    await persist_draft(session_factory, laptop("S1", source="NINJAONE"), None, ResolveOptions(track_presence=True))
    await persist_draft(session_factory, laptop("S2"), None, ResolveOptions())

    async with session_factory() as s:
        links = list((await s.execute(select(ExternalSourceLink))).scalars().all())
    assert [(link.source_system, link.external_id, link.is_present) for link in links] == [("NINJAONE", "S1", True)]


@pytest.mark.asyncio
async def test_reactivation_is_vetoed_without_approval(session_factory):
    await persist_draft(session_factory, laptop("S1", status="RETIRED"), None, ResolveOptions())
    draft = laptop("S1", status="AVAILABLE", source="NINJAONE")
    resolution = await persist_draft(session_factory, draft, None, ResolveOptions(track_presence=True))

    assert resolution.operation == "update"
    assert resolution.reactivated is False
    assert resolution.reactivation_vetoed is True
    assert resolution.status == "RETIRED"
    assert "Reactivation not approved; asset stays retired" in draft.processing_notes
    assert (await load(session_factory, "S1")).status == "RETIRED"


@pytest.mark.asyncio
async def test_reactivation_with_approval(session_factory):
    created = await persist_draft(session_factory, laptop("S1", status="RETIRED"), None, ResolveOptions())
    resolution = await persist_draft(
        session_factory,
        laptop("S1", status="ASSIGNED", source="NINJAONE"),
        None,
        ResolveOptions(track_presence=True, allowed_reactivations=frozenset({"S1"})),
    )

    assert resolution.reactivated is True
    assert resolution.status == "ASSIGNED"
    (entry,) = await activities(session_factory, created.asset_id, "REACTIVATE")
    assert entry.action == "REACTIVATE"
    assert entry.changes_json["status"] == {"from": "RETIRED", "to": "ASSIGNED"}


@pytest.mark.asyncio
async def test_untracked_sources_skip_the_veto(session_factory):
    await persist_draft(session_factory, laptop("S1", status="RETIRED"), None, ResolveOptions())
    resolution = await persist_draft(session_factory, laptop("S1", status="AVAILABLE"), None, ResolveOptions())
    assert resolution.status == "AVAILABLE"
    assert resolution.reactivated is False

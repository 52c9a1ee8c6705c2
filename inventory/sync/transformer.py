"""Row transformer: raw source row + column mappings -> AssetDraft."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Iterable

from ..config import settings
from ..models.asset import ASSET_CONDITIONS, ASSET_STATUSES, ASSET_TYPES, STATUS_ASSIGNED, STATUS_AVAILABLE
from .devices import parse_device_name
from .draft import AssetDraft
from .errors import DraftValidationError, MissingRequiredField
from .field_mapper import DATE_FIELDS, classify_target, index_headers, lookup_column
from .normalizers import (
    aggregate_volumes,
    blank_to_none,
    normalize_org_asset_tag,
    parse_price,
    simplify_ram,
    strip_domain_prefix,
    to_iso,
)
from .sources import NINJA_ROLE_TO_ASSET_TYPE, CarrierAdapter, get_adapter, normalize_import_source
from .tags import generate_asset_tag, phone_asset_tag

logger = logging.getLogger(__name__)

_ENUM_VOCABULARY = {
    "status": ASSET_STATUSES,
    "condition": ASSET_CONDITIONS,
}


@dataclass(frozen=True)
class ColumnMapping:
    source_column: str
    target_field: str
    is_required: bool = False


def _coerce_asset_type(value: str) -> str:
    upper = value.strip().upper()
    if upper in ASSET_TYPES:
        return upper
    return NINJA_ROLE_TO_ASSET_TYPE.get(upper, "OTHER")


def _set_direct(draft: AssetDraft, name: str, value: Any) -> None:
    """Assign one direct field, converting to the draft's representation."""
    if name in DATE_FIELDS:
        iso = to_iso(value)
        if iso is None:
            draft.processing_notes.append(f"Ignored unparseable date for {name}: {value!r}")
            return
        setattr(draft, name, iso)
        return

    if name == "purchase_price":
        price = parse_price(value)
        if price is None:
            draft.processing_notes.append(f"Ignored unparseable price: {value!r}")
            return
        draft.purchase_price = price
        return

    text = blank_to_none(value)
    if text is None:
        return

    if name == "asset_type":
        draft.asset_type = _coerce_asset_type(text)
    elif name in _ENUM_VOCABULARY:
        upper = text.upper()
        if upper not in _ENUM_VOCABULARY[name]:
            draft.processing_notes.append(f"Ignored unknown {name} {text!r}")
            return
        setattr(draft, name, upper)
    elif name == "location_id":
        try:
            draft.location_id = uuid.UUID(text)
        except ValueError:
            # Free-text site labels are matched against locations later.
            if not draft.location_name:
                draft.location_name = text
    else:
        setattr(draft, name, text)


def _spec_value(key: str, raw: str) -> Any:
    if key == "ram":
        return simplify_ram(raw) or raw
    if key == "storage":
        return aggregate_volumes(raw) or raw
    if key == "lastOnline":
        return to_iso(raw) or raw
    return raw


def apply_column_mappings(
    draft: AssetDraft,
    row: dict[str, Any],
    mappings: Iterable[ColumnMapping],
) -> None:
    """Second pass: caller mappings fill only what the adapter left unset."""
    index = index_headers(row)
    for mapping in mappings:
        kind, key = classify_target(mapping.target_field)
        raw = blank_to_none(lookup_column(row, index, mapping.source_column))
        if raw is None:
            if not mapping.is_required or key == "model":
                continue
            if kind == "direct" and draft.is_set(key):
                continue
            raise MissingRequiredField(key, mapping.source_column)

        if kind == "custom":
            draft.custom_fields.setdefault(key, raw)
        elif kind == "direct":
            if not draft.is_set(key):
                _set_direct(draft, key, raw)
        elif key not in draft.specifications:
            draft.specifications[key] = _spec_value(key, raw)


def _apply_phone_details(draft: AssetDraft) -> None:
    """Phones mapped from generic sources carry the raw device name in ``model``."""
    raw_model = draft.model
    if raw_model and raw_model != "Unknown":
        parsed = parse_device_name(raw_model)
        if not draft.make or draft.make == "Unknown":
            draft.make = parsed.make
        draft.model = parsed.model
        if parsed.storage:
            draft.specifications.setdefault("storage", parsed.storage)
        draft.specifications.setdefault("operatingSystem", raw_model)
    draft.specifications.setdefault("carrier", settings.import_default_carrier)


def transform_row(
    source: str | None,
    row: dict[str, Any],
    mappings: Iterable[ColumnMapping] = (),
    index: int = 0,
) -> AssetDraft:
    """Build a draft from one raw row.

    Raises DraftValidationError (reported as skipped) when the row has no
    derivable serial number or a required mapped column is empty.
    """
    adapter = get_adapter(source)
    draft = AssetDraft(index=index, source=normalize_import_source(source))

    result = adapter.apply(row)
    for name, value in result.direct.items():
        _set_direct(draft, name, value)
    draft.specifications.update(result.specifications)
    draft.processing_notes.extend(result.notes)

    apply_column_mappings(draft, row, mappings)

    draft.condition = draft.condition or "GOOD"
    draft.asset_type = draft.asset_type or adapter.default_asset_type
    draft.make = draft.make or adapter.default_make
    draft.model = draft.model or "Unknown"
    if draft.assigned_to_aad_id:
        draft.assigned_to_aad_id = strip_domain_prefix(draft.assigned_to_aad_id)

    if draft.asset_type == "PHONE" and not isinstance(adapter, CarrierAdapter):
        _apply_phone_details(draft)

    if not draft.is_set("serial_number") and draft.asset_type == "PHONE":
        imei = blank_to_none(draft.specifications.get("imei"))
        if imei:
            draft.serial_number = imei
    if not draft.is_set("serial_number"):
        raise DraftValidationError("Missing serial number")
    draft.serial_number = draft.serial_number.strip()

    if draft.asset_type != "PHONE":
        if draft.asset_tag and settings.import_org_tag_prefix:
            draft.asset_tag = normalize_org_asset_tag(
                draft.asset_tag, settings.import_org_tag_prefix, settings.import_org_tag_width
            )
        if not draft.asset_tag:
            draft.asset_tag = generate_asset_tag(draft.asset_type, index)
            draft.tag_generated = True

    return draft


def finalize_draft(draft: AssetDraft) -> AssetDraft:
    """Apply the assignment-dependent fields once directory resolution is done."""
    if draft.asset_type == "PHONE":
        owner = draft.assignee_display_name
        if not owner and draft.assigned_to_aad_id and " " in draft.assigned_to_aad_id:
            owner = draft.assigned_to_aad_id
        draft.asset_tag = phone_asset_tag(owner, draft.serial_number)
        # Only the owner-less form is random.
        draft.tag_generated = not (owner and owner.strip())
        draft.tag_derived = not draft.tag_generated

    if draft.assigned_to_id or draft.assigned_to_aad_id:
        draft.status = STATUS_ASSIGNED
    else:
        draft.status = draft.status or STATUS_AVAILABLE
    return draft

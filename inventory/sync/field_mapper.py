"""Mapping between import column targets and draft attributes."""

from __future__ import annotations

import re

CUSTOM_FIELD_PREFIX = "cf_"

# Draft attributes that land in Asset columns.
DIRECT_FIELDS: frozenset[str] = frozenset({
    "asset_tag",
    "asset_type",
    "status",
    "condition",
    "make",
    "model",
    "serial_number",
    "assigned_to_id",
    "assigned_to_aad_id",
    "department_id",
    "location_id",
    "location_name",
    "purchase_date",
    "purchase_price",
    "vendor_id",
    "warranty_start_date",
    "warranty_end_date",
    "warranty_notes",
    "notes",
})

DATE_FIELDS: frozenset[str] = frozenset({"purchase_date", "warranty_start_date", "warranty_end_date"})

# Client-side (camelCase) target names -> draft attribute
FIELD_ALIASES: dict[str, str] = {
    "assetTag": "asset_tag",
    "assetType": "asset_type",
    "serialNumber": "serial_number",
    "assignedToId": "assigned_to_id",
    "assignedToAadId": "assigned_to_aad_id",
    "departmentId": "department_id",
    "locationId": "location_id",
    "locationName": "location_name",
    "purchaseDate": "purchase_date",
    "purchasePrice": "purchase_price",
    "vendorId": "vendor_id",
    "warrantyStartDate": "warranty_start_date",
    "warrantyEndDate": "warranty_end_date",
    "warrantyNotes": "warranty_notes",
}

_HEADER_WS_RE = re.compile(r"\s+")


def header_key(name: str) -> str:
    """Case- and whitespace-insensitive column key: ``" Serial Number "`` -> ``"serialnumber"``."""
    return _HEADER_WS_RE.sub("", str(name)).lower()


def index_headers(row: dict) -> dict[str, str]:
    """Map normalized header keys to the row's actual keys (first occurrence wins)."""
    index: dict[str, str] = {}
    for key in row:
        index.setdefault(header_key(key), key)
    return index


def lookup_column(row: dict, index: dict[str, str], column: str):
    actual = index.get(header_key(column))
    if actual is None:
        return None
    return row.get(actual)


def canonical_field(target: str) -> str:
    """Resolve a caller-supplied target name to a draft attribute or specifications key."""
    target = target.strip()
    return FIELD_ALIASES.get(target, target)


def classify_target(target: str) -> tuple[str, str]:
    """Return ``(kind, key)`` where kind is ``direct``, ``custom`` or ``specifications``."""
    target = target.strip()
    if target.startswith(CUSTOM_FIELD_PREFIX):
        return "custom", target[len(CUSTOM_FIELD_PREFIX):]
    field = canonical_field(target)
    if field in DIRECT_FIELDS:
        return "direct", field
    return "specifications", target

"""Asset draft - transient canonical record for one import row."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field, fields
from typing import Any

from .field_mapper import canonical_field
from .normalizers import parse_iso


@dataclass
class AssetDraft:
    index: int
    source: str
    serial_number: str | None = None
    asset_tag: str | None = None
    tag_generated: bool = False
    # Built from owner and serial; never used to identify an existing asset.
    tag_derived: bool = False
    asset_type: str | None = None
    status: str | None = None
    condition: str | None = None
    make: str | None = None
    model: str | None = None
    assigned_to_id: str | None = None
    assigned_to_aad_id: str | None = None
    assignee_display_name: str | None = None
    department_id: str | None = None
    location_id: uuid.UUID | None = None
    location_name: str | None = None
    vendor_id: str | None = None
    purchase_date: str | None = None
    purchase_price: float | None = None
    warranty_start_date: str | None = None
    warranty_end_date: str | None = None
    warranty_notes: str | None = None
    notes: str | None = None
    specifications: dict[str, Any] = field(default_factory=dict)
    custom_fields: dict[str, str] = field(default_factory=dict)
    processing_notes: list[str] = field(default_factory=list)

    def is_set(self, name: str) -> bool:
        value = getattr(self, name, None)
        if isinstance(value, str):
            return bool(value.strip())
        return value is not None

    def get(self, path: str) -> Any:
        """Resolve a dotted path; ``specifications.ram`` reads the spec map."""
        parts = [p for p in path.strip().split(".") if p]
        if not parts:
            return None
        if parts[0] == "specifications":
            return _walk(self.specifications, parts[1:])
        attr = canonical_field(parts[0])
        if len(parts) == 1 and attr in _DRAFT_ATTRS:
            return getattr(self, attr)
        # Unknown top-level names fall through to the specifications map.
        return _walk(self.specifications, parts)

    @property
    def assignee(self) -> str | None:
        return self.assigned_to_id or self.assigned_to_aad_id

    def specifications_blob(self) -> str | None:
        if not self.specifications:
            return None
        return json.dumps(self.specifications, sort_keys=True, default=str)

    def asset_values(self) -> dict[str, Any]:
        """Column values for an Asset write; unset fields are omitted."""
        values: dict[str, Any] = {
            "asset_tag": self.asset_tag,
            "serial_number": self.serial_number,
            "asset_type": self.asset_type,
            "status": self.status,
            "condition": self.condition,
            "source": self.source,
            "make": self.make,
            "model": self.model,
            "assigned_to_id": self.assigned_to_id,
            "assigned_to_aad_id": self.assigned_to_aad_id,
            "department_id": self.department_id,
            "location_id": self.location_id,
            "vendor_id": self.vendor_id,
            "purchase_date": parse_iso(self.purchase_date),
            "purchase_price": self.purchase_price,
            "warranty_start_date": parse_iso(self.warranty_start_date),
            "warranty_end_date": parse_iso(self.warranty_end_date),
            "warranty_notes": self.warranty_notes,
            "notes": self.notes,
        }
        return {k: v for k, v in values.items() if v is not None}


def _walk(value: Any, parts: list[str]) -> Any:
    for part in parts:
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


_DRAFT_ATTRS = frozenset(f.name for f in fields(AssetDraft)) - {"specifications", "custom_fields", "processing_notes"}

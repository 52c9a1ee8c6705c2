"""Source adapters: one per known export format, selected by SourceKind."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from ..config import settings
from ..models.asset import ASSET_TYPES
from .devices import ParsedDevice, parse_device_name, parse_rogers_device_name
from .field_mapper import index_headers, lookup_column
from .normalizers import (
    aggregate_server_volumes,
    aggregate_volumes,
    blank_to_none,
    clean_phone_number,
    normalize_org_asset_tag,
    parse_bool,
    parse_price,
    simplify_ram,
    strip_domain_prefix,
    to_iso,
)


class SourceKind(str, Enum):
    NINJAONE = "ninjaone"
    NINJAONE_SERVERS = "ninjaone-servers"
    TELUS = "telus"
    ROGERS = "rogers"
    TEMPLATE = "bgc-template"
    INVOICE = "invoice"
    INTUNE = "intune"
    CUSTOM_EXCEL = "custom-excel"
    BULK_UPLOAD = "bulk-upload"


# Canonical source label stored on assets, links and sync runs.
SOURCE_LABELS: dict[SourceKind, str] = {
    SourceKind.NINJAONE: "NINJAONE",
    SourceKind.NINJAONE_SERVERS: "NINJAONE_SERVERS",
    SourceKind.TELUS: "TELUS",
    SourceKind.ROGERS: "ROGERS",
    SourceKind.TEMPLATE: "EXCEL",
    SourceKind.INVOICE: "EXCEL",
    SourceKind.INTUNE: "INTUNE",
    SourceKind.CUSTOM_EXCEL: "EXCEL",
    SourceKind.BULK_UPLOAD: "BULK_UPLOAD",
}

NINJA_ROLE_TO_ASSET_TYPE: dict[str, str] = {
    "WINDOWS_DESKTOP": "DESKTOP",
    "WINDOWS_LAPTOP": "LAPTOP",
    "WINDOWS WORKSTATION": "LAPTOP",
    "MAC_DESKTOP": "DESKTOP",
    "MAC_LAPTOP": "LAPTOP",
    "LINUX_DESKTOP": "DESKTOP",
    "LINUX_LAPTOP": "LAPTOP",
    "WINDOWS_SERVER": "SERVER",
    "LINUX_SERVER": "SERVER",
    "HYPER-V_SERVER": "SERVER",
    "VMWARE_SERVER": "SERVER",
    "SERVER": "SERVER",
    "TABLET": "TABLET",
    "MOBILE": "OTHER",
    "NETWORK_DEVICE": "OTHER",
    "PRINTER": "OTHER",
}

TEMPLATE_DEVICE_TYPES = {
    "laptop": "LAPTOP",
    "desktop": "DESKTOP",
    "tablet": "TABLET",
    "phone": "PHONE",
    "server": "SERVER",
    "workstation": "DESKTOP",
    "all-in-one": "DESKTOP",
}

TEMPLATE_STATUSES = {
    "active": "AVAILABLE",
    "available": "AVAILABLE",
    "assigned": "ASSIGNED",
    "in use": "ASSIGNED",
    "spare": "SPARE",
    "maintenance": "MAINTENANCE",
    "repair": "MAINTENANCE",
    "retired": "RETIRED",
    "disposed": "DISPOSED",
}

TEMPLATE_CONDITIONS = {
    "new": "NEW",
    "excellent": "GOOD",
    "good": "GOOD",
    "fair": "FAIR",
    "poor": "POOR",
    "damaged": "POOR",
}

_VIRTUAL_MARKERS = ("VIRTUAL", "VMWARE", "KVM", "HVM", "HYPER-V", "QEMU", "XEN")
_SERVER_SITE_RE = re.compile(r"^([A-Z]{3})(?=[-_\d])")


@dataclass(frozen=True)
class ColumnRule:
    column: str
    field: str = ""
    target: str = "direct"  # direct, specifications, ignore
    processor: Callable[[str], Any] | None = None
    required: bool = False


@dataclass
class AdapterResult:
    direct: dict[str, Any] = field(default_factory=dict)
    specifications: dict[str, Any] = field(default_factory=dict)
    notes: list[str] = field(default_factory=list)


def _org_tag(value: str) -> str | None:
    return normalize_org_asset_tag(
        value, settings.import_org_tag_prefix, settings.import_org_tag_width
    )


def _ninja_role(value: str) -> str:
    return NINJA_ROLE_TO_ASSET_TYPE.get(value.strip().upper(), "OTHER")


def _ninja_server_role(value: str) -> str:
    return "SERVER" if _ninja_role(value) == "SERVER" else "OTHER"


def _lookup(table: dict[str, str], default: str) -> Callable[[str], str]:
    def convert(value: str) -> str:
        return table.get(value.strip().lower(), default)
    return convert


def _invoice_asset_type(value: str) -> str:
    upper = value.strip().upper()
    return upper if upper in ASSET_TYPES else "OTHER"


def detect_virtualization(value: str) -> str:
    upper = value.upper()
    return "Virtual" if any(marker in upper for marker in _VIRTUAL_MARKERS) else "Physical"


def server_site_code(value: str) -> str | None:
    """``"CAL-DC01"`` -> ``"CAL"``; matched against locations later."""
    match = _SERVER_SITE_RE.match(value.strip().upper())
    return match.group(1) if match else None


class SourceAdapter:
    """Applies a source's column rules and post-processing heuristics to a raw row."""

    kind: SourceKind = SourceKind.BULK_UPLOAD
    rules: tuple[ColumnRule, ...] = ()
    default_asset_type: str = "LAPTOP"
    default_make: str = "Unknown"

    def apply(self, row: dict[str, Any]) -> AdapterResult:
        result = AdapterResult()
        index = index_headers(row)
        for rule in self.rules:
            raw = blank_to_none(lookup_column(row, index, rule.column))
            if raw is None:
                if rule.required:
                    result.notes.append(f"Expected column {rule.column!r} is empty")
                continue
            if rule.target == "ignore":
                continue
            value: Any = raw
            if rule.processor is not None:
                try:
                    value = rule.processor(raw)
                except (TypeError, ValueError) as exc:
                    result.notes.append(f"Failed to process {rule.column}: {exc}")
                    continue
            if value is None or value == "":
                continue
            if rule.target == "direct":
                result.direct[rule.field] = value
            else:
                result.specifications[rule.field] = value
        self.post_process(result, row, index)
        return result

    def post_process(self, result: AdapterResult, row: dict[str, Any], index: dict[str, str]) -> None:
        pass


class GenericAdapter(SourceAdapter):
    """No built-in columns; caller mappings do all the work."""

    def __init__(self, kind: SourceKind = SourceKind.BULK_UPLOAD):
        self.kind = kind


_NINJA_SHARED_RULES: tuple[ColumnRule, ...] = (
    ColumnRule("Warranty End Date", "warranty_end_date", processor=to_iso),
    ColumnRule("Last LoggedIn User", "assigned_to_aad_id", processor=strip_domain_prefix),
    ColumnRule("RAM", "ram", "specifications", simplify_ram),
    ColumnRule("OS Name", "operatingSystem", "specifications"),
    ColumnRule("OS Architecture", "osArchitecture", "specifications"),
    ColumnRule("OS Build Number", "osBuildNumber", "specifications"),
    ColumnRule("OS Version", "osVersion", "specifications"),
    ColumnRule("Processor", "processor", "specifications"),
    ColumnRule("Graphics", "graphics", "specifications"),
    ColumnRule("Network Adapters", "networkAdapters", "specifications"),
    ColumnRule("Serial Number", "serial_number", required=True),
    ColumnRule("Manufacturer", "make"),
    ColumnRule("Model", "model"),
    ColumnRule("System Model", "model"),
    ColumnRule("Last Online", "lastOnline", "specifications", to_iso),
    ColumnRule("System Name", "systemName", "specifications"),
)


class NinjaOneAdapter(SourceAdapter):
    """Endpoint-management export (workstations and laptops)."""

    kind = SourceKind.NINJAONE
    rules = (
        ColumnRule("Display Name", "asset_tag", processor=_org_tag, required=True),
        ColumnRule("Role", "asset_type", processor=_ninja_role, required=True),
        ColumnRule("Volumes", "storage", "specifications", aggregate_volumes),
    ) + _NINJA_SHARED_RULES

    def post_process(self, result, row, index):
        user = result.direct.get("assigned_to_aad_id")
        if user:
            result.notes.append(f'Username "{user}" requires directory lookup')


class NinjaOneServersAdapter(NinjaOneAdapter):
    """Server export: site from the host name, virtual/physical detection, always in use."""

    kind = SourceKind.NINJAONE_SERVERS
    default_asset_type = "SERVER"
    rules = (
        ColumnRule("Display Name", "asset_tag", processor=lambda v: v.strip().upper(), required=True),
        ColumnRule("Role", "asset_type", processor=_ninja_server_role, required=True),
        ColumnRule("Display Name", "location_name", processor=server_site_code),
        ColumnRule("System Model", "virtualizationType", "specifications", detect_virtualization),
        ColumnRule("Volumes", "storage", "specifications", aggregate_server_volumes),
    ) + _NINJA_SHARED_RULES

    def post_process(self, result, row, index):
        super().post_process(result, row, index)
        result.direct["status"] = "ASSIGNED"
        site = result.direct.get("location_name")
        if site:
            result.notes.append(f'Location "{site}" will be matched to existing locations')


class CarrierAdapter(SourceAdapter):
    """Phone-carrier export: device description parsing and IMEI serial fallback."""

    default_asset_type = "PHONE"
    carrier: str = ""
    device_column: str = "Device Name"

    def parse_device(self, value: str) -> ParsedDevice:
        return parse_device_name(value)

    def post_process(self, result, row, index):
        result.direct["asset_type"] = "PHONE"
        result.specifications.setdefault("carrier", self.carrier or settings.import_default_carrier)

        device_name = blank_to_none(lookup_column(row, index, self.device_column))
        if device_name:
            parsed = self.parse_device(device_name)
            result.direct.setdefault("make", parsed.make)
            result.direct.setdefault("model", parsed.model)
            if parsed.storage:
                result.specifications.setdefault("storage", parsed.storage)
            result.specifications.setdefault("operatingSystem", device_name)
        else:
            result.notes.append(f"Expected column {self.device_column!r} is empty")

        imei = blank_to_none(result.specifications.get("imei"))
        if imei and not result.direct.get("serial_number"):
            result.direct["serial_number"] = imei


class TelusAdapter(CarrierAdapter):
    kind = SourceKind.TELUS
    carrier = "Telus"
    device_column = "Device Name"
    rules = (
        ColumnRule("Subscriber Name", "assigned_to_aad_id", processor=blank_to_none),
        ColumnRule("Phone Number", "phoneNumber", "specifications", clean_phone_number),
        ColumnRule("Rate Plan", "planType", "specifications"),
        ColumnRule("Serial Number", "serial_number", processor=blank_to_none),
        ColumnRule("IMEI", "imei", "specifications", blank_to_none),
        ColumnRule("Contract end date", "contractEndDate", "specifications", to_iso),
        ColumnRule("BAN", target="ignore"),
        ColumnRule("Status", target="ignore"),
    )


class RogersAdapter(CarrierAdapter):
    kind = SourceKind.ROGERS
    carrier = "Rogers"
    device_column = "Device Description"
    rules = (
        ColumnRule("Usernames", "assigned_to_aad_id", processor=blank_to_none),
        ColumnRule("Subscriber Number", "phoneNumber", "specifications", clean_phone_number),
        ColumnRule("Price Plan Description", "planType", "specifications"),
        ColumnRule("Serial Number", "serial_number", processor=blank_to_none),
        ColumnRule("IMEI", "imei", "specifications", blank_to_none),
        ColumnRule("SIM Card", "simCard", "specifications"),
        ColumnRule("Commit Start Date", "purchase_date", processor=to_iso),
        ColumnRule("Commit End Date", "contractEndDate", "specifications", to_iso),
        ColumnRule("HUP Eligible (y/n)", "hupEligible", "specifications", parse_bool),
        ColumnRule("Account Number", target="ignore"),
        ColumnRule("Status", target="ignore"),
        ColumnRule("# of Months Remaining", target="ignore"),
        ColumnRule("Early Cancellation Fee", target="ignore"),
        ColumnRule("Applicable Pre-HUP", target="ignore"),
        ColumnRule("Available HUP Date(s)", target="ignore"),
    )

    def parse_device(self, value: str) -> ParsedDevice:
        return parse_rogers_device_name(value)


class TemplateAdapter(SourceAdapter):
    """Standard spreadsheet template maintained by the IT team."""

    kind = SourceKind.TEMPLATE
    default_make = "Dell"
    rules = (
        ColumnRule("Service Tag", "serial_number", processor=blank_to_none, required=True),
        ColumnRule("Brand", "make"),
        ColumnRule("Model", "model"),
        ColumnRule("Purchase date", "purchase_date", processor=to_iso),
        ColumnRule("Location of computer", "location_name"),
        ColumnRule("Asset Tag", "asset_tag", processor=_org_tag),
        ColumnRule("Assigned User", "assigned_to_aad_id", processor=blank_to_none),
        ColumnRule("Device Type", "asset_type", processor=_lookup(TEMPLATE_DEVICE_TYPES, "OTHER")),
        ColumnRule("Status", "status", processor=_lookup(TEMPLATE_STATUSES, "AVAILABLE")),
        ColumnRule("Condition", "condition", processor=_lookup(TEMPLATE_CONDITIONS, "GOOD")),
        ColumnRule("Purchase Price", "purchase_price", processor=parse_price),
        ColumnRule("Warranty Start", "warranty_start_date", processor=to_iso),
        ColumnRule("Warranty End", "warranty_end_date", processor=to_iso),
        ColumnRule("Notes", "notes"),
    )


class InvoiceAdapter(SourceAdapter):
    """Line items extracted from a purchase invoice."""

    kind = SourceKind.INVOICE
    rules = (
        ColumnRule("Serial Number", "serial_number", required=True),
        ColumnRule("Make", "make"),
        ColumnRule("Model", "model"),
        ColumnRule("Asset Type", "asset_type", processor=_invoice_asset_type),
        ColumnRule("Purchase date", "purchase_date", processor=to_iso),
        ColumnRule("Warranty Start Date", "warranty_start_date", processor=to_iso),
        ColumnRule("Warranty End Date", "warranty_end_date", processor=to_iso),
        ColumnRule("Unit price", "purchase_price", processor=parse_price),
        ColumnRule("Invoice Number", "invoiceNumber", "specifications"),
        ColumnRule("cpu", "cpu", "specifications"),
        ColumnRule("ram", "ram", "specifications", simplify_ram),
        ColumnRule("storage", "storage", "specifications"),
        ColumnRule("gpu", "gpu", "specifications"),
        ColumnRule("operatingSystem", "operatingSystem", "specifications"),
    )


_ADAPTERS: dict[SourceKind, SourceAdapter] = {
    SourceKind.NINJAONE: NinjaOneAdapter(),
    SourceKind.NINJAONE_SERVERS: NinjaOneServersAdapter(),
    SourceKind.TELUS: TelusAdapter(),
    SourceKind.ROGERS: RogersAdapter(),
    SourceKind.TEMPLATE: TemplateAdapter(),
    SourceKind.INVOICE: InvoiceAdapter(),
    SourceKind.INTUNE: GenericAdapter(SourceKind.INTUNE),
    SourceKind.CUSTOM_EXCEL: GenericAdapter(SourceKind.CUSTOM_EXCEL),
    SourceKind.BULK_UPLOAD: GenericAdapter(SourceKind.BULK_UPLOAD),
}


def parse_source_kind(source: str | None) -> SourceKind | None:
    """Match a caller-supplied source identifier; None for unknown identifiers."""
    if not source or not source.strip():
        return SourceKind.BULK_UPLOAD
    key = source.strip().lower().replace("_", "-")
    try:
        return SourceKind(key)
    except ValueError:
        return None


def normalize_import_source(source: str | None) -> str:
    """Canonical source label for a caller-supplied identifier.

    Unknown identifiers are kept, upper-cased, so custom feeds still get
    their own presence bookkeeping namespace.
    """
    kind = parse_source_kind(source)
    if kind is not None:
        return SOURCE_LABELS[kind]
    label = re.sub(r"[^A-Z0-9]+", "_", source.strip().upper()).strip("_")
    return label or SOURCE_LABELS[SourceKind.BULK_UPLOAD]


def get_adapter(source: str | None) -> SourceAdapter:
    kind = parse_source_kind(source)
    if kind is None:
        return GenericAdapter()
    return _ADAPTERS[kind]

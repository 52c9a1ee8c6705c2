"""Value normalizers shared by the source adapters and column mapping."""

from __future__ import annotations

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any

from dateutil import parser as date_parser

_EXCEL_EPOCH = datetime(1899, 12, 30, tzinfo=timezone.utc)
_DIGITS_RE = re.compile(r"^\d+(?:\.\d+)?$")
_COMPACT_DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_OFFSET_NO_COLON_RE = re.compile(r"([+-]\d{2})(\d{2})$")
_LEADING_NUMBER_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")
_VOLUME_RE = re.compile(r'Type: "(.*?)"(?:[^(]*)\((\d+\.?\d*)\s*GiB\)')
_GUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_ALNUM_RE = re.compile(r"^[A-Z0-9]+$", re.IGNORECASE)

# Anything above this is a raw byte count rather than GiB.
_RAM_BYTES_THRESHOLD = 1_000_000


def format_iso(value: datetime) -> str:
    """Render a datetime as UTC ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO string produced by :func:`to_iso` back into an aware datetime."""
    if not value:
        return None
    parsed = date_parser.isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso(value: Any) -> str | None:
    """Normalize a date-like value to a UTC ISO-8601 string.

    Accepts calendar strings (with or without a colon in the numeric
    offset, e.g. ``-0700``), compact ``YYYYMMDD`` strings, and spreadsheet
    serial day numbers counted from 1899-12-30. Returns None when the
    value cannot be interpreted.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return format_iso(value)
    text = str(value).strip()
    if not text:
        return None

    compact = _COMPACT_DATE_RE.match(text)
    if compact:
        try:
            return format_iso(datetime(int(compact[1]), int(compact[2]), int(compact[3])))
        except ValueError:
            return None

    if _DIGITS_RE.match(text):
        try:
            return format_iso(_EXCEL_EPOCH + timedelta(days=math.floor(float(text))))
        except OverflowError:
            return None

    cleaned = _OFFSET_NO_COLON_RE.sub(r"\1:\2", text)
    try:
        parsed = date_parser.isoparse(cleaned)
    except ValueError:
        try:
            parsed = date_parser.parse(cleaned)
        except (ValueError, OverflowError):
            return None
    return format_iso(parsed)


def parse_number(value: Any) -> float:
    """Leading-number coercion: ``"16 GB"`` -> 16.0. Raises ValueError when none."""
    if isinstance(value, bool):
        raise ValueError(f"not numeric: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER_RE.match(str(value))
    if not match:
        raise ValueError(f"not numeric: {value!r}")
    return float(match.group(1))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def round_to_common_storage_size(gib: float) -> str:
    if gib > 1800:
        return "2 TB"
    if gib > 900:
        return "1 TB"
    if gib > 450:
        return "512 GB"
    if gib > 230:
        return "256 GB"
    if gib > 110:
        return "128 GB"
    if gib > 55:
        return "64 GB"
    if gib > 28:
        return "32 GB"
    if gib > 14:
        return "16 GB"
    if gib > 6:
        return "8 GB"
    return f"{_round_half_up(gib)} GB"


def round_server_storage_size(gib: float) -> str:
    """Servers carry multi-terabyte arrays; keep one decimal of TB above 1 TB."""
    if gib >= 1000:
        tb = gib / 1024
        return f"{tb:.1f}".rstrip("0").rstrip(".") + " TB"
    return round_to_common_storage_size(gib)


def simplify_ram(value: Any) -> str | None:
    """Simplify a raw memory figure (GiB or bytes) to a marketing size label."""
    if value is None or str(value).strip() == "":
        return None
    try:
        gib = parse_number(value)
    except ValueError:
        return None
    if gib > _RAM_BYTES_THRESHOLD:
        gib = gib / (1024 ** 3)

    if gib > 120:
        return "128 GB"
    if gib > 90:
        return "96 GB"
    if gib > 60:
        return "64 GB"
    if gib > 30:
        return "32 GB"
    if gib > 14:
        return "16 GB"
    if gib > 6:
        return "8 GB"
    if gib > 2:
        return "4 GB"
    return f"{_round_half_up(gib)} GB"


def _total_local_volume_gib(value: str) -> float:
    total = 0.0
    for volume_type, capacity in _VOLUME_RE.findall(value):
        if volume_type.strip().lower() == "removable disk":
            continue
        total += float(capacity)
    return total


def aggregate_volumes(value: str | None) -> str | None:
    """Sum the non-removable volumes of an endpoint export into one rounded label."""
    if not value:
        return None
    total = _total_local_volume_gib(value)
    return round_to_common_storage_size(total) if total > 0 else None


def aggregate_server_volumes(value: str | None) -> str | None:
    if not value:
        return None
    total = _total_local_volume_gib(value)
    return round_server_storage_size(total) if total > 0 else None


def clean_phone_number(value: str | None) -> str | None:
    if value is None:
        return None
    digits = re.sub(r"\D", "", str(value))
    return digits or None


def strip_domain_prefix(value: str | None) -> str | None:
    """``"CORP\\jdoe"`` -> ``"jdoe"``."""
    if value is None:
        return None
    text = str(value).strip()
    if "\\" in text:
        text = text.split("\\")[-1].strip()
    return text or None


def is_guid(value: str | None) -> bool:
    return bool(value) and bool(_GUID_RE.match(value.strip()))


def normalize_org_asset_tag(value: str | None, prefix: str, width: int = 6) -> str | None:
    """Apply the organization tag prefix to bare tags.

    Numeric tags are zero padded (``4315`` -> ``BGC004315``); other
    alphanumeric tags lacking the prefix get it prepended. With an empty
    prefix the tag is only upper-cased.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if not prefix:
        return text.upper()
    prefix = prefix.upper()
    if text.isdigit():
        return f"{prefix}{text.zfill(width)}"
    if _ALNUM_RE.match(text) and not text.upper().startswith(prefix):
        return f"{prefix}{text.upper()}"
    return text.upper()


def parse_price(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    cleaned = re.sub(r"[$,\s]", "", str(value))
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_bool(value: Any) -> bool | None:
    if value is None or str(value).strip() == "":
        return None
    return str(value).strip().lower() in {"y", "yes", "true", "1"}


def title_word(word: str) -> str:
    """``"PRO"`` -> ``"Pro"``; keeps the first character as-is (``"6A"`` -> ``"6a"``)."""
    return word[:1] + word[1:].lower()


def blank_to_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None

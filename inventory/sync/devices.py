"""Free-text device name parsing for carrier (phone) exports."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .normalizers import title_word

_STORAGE_TOKEN_RE = re.compile(r"(\d+)(?:GB|TB)")
_IPHONE_RE = re.compile(r"IPHONE\s+(\d+(?:\s+(?:PRO|PLUS|MINI|MAX))*)")
_GALAXY_RE = re.compile(r"GALAXY\s+([A-Z]\d+(?:\s+(?:PLUS|ULTRA|FE))*)")
_PIXEL_RE = re.compile(r"PIXEL\s+(\d+[A-Z]*(?:\s+(?:PRO|XL))*)")
_IPAD_NOISE_RE = re.compile(r"\b(?:SPACE|SPC|GRAY|GRY|GREY|SILVER|SLV|ARTL|TL|ML|AL|TI|BLK|MID|ROSE|GOLD)\b")
_WATCH_NOISE_RE = re.compile(
    r"\b(?:SPACE|SPC|GRAY|GRY|GREY|BLACK|BLK|MID|BLUE|RED|PINK|ORANGE|YELLOW|WHITE|SILVER|STAINLESS)\b"
)

# Carrier-specific abbreviations
_ROGERS_IPAD_PRO_RE = re.compile(r"IPDP(\d{1,2})?")
_ROGERS_IPAD_AIR_RE = re.compile(r"IPADAIR(\d{2,3})?")
_IPAD_PRO_FULL_RE = re.compile(r"IPAD\s+PRO\s+(\d{1,2}(?:\.\d+)?)?")
_IPAD_COMPACT_RE = re.compile(r"IPAD([A-Z]*)(\d{2,3})?")
_ROGERS_IPHONE_RE = re.compile(r"IP(\d{2})(PROMAX|PRO|PM|P)?")
_BARE_STORAGE_RE = re.compile(r"\b(32|64|128|256|512)\b")
_BARE_GALAXY_RE = re.compile(r"^(S\d+[A-Z]*)")

_IPHONE_SUFFIXES = {"P": " Pro", "PRO": " Pro", "PM": " Pro Max", "PROMAX": " Pro Max"}


@dataclass(frozen=True)
class ParsedDevice:
    make: str
    model: str
    storage: str | None = None


def _title(text: str) -> str:
    return " ".join(title_word(w) for w in text.split() if w)


def parse_device_name(device_name: str | None) -> ParsedDevice:
    """Split a carrier device description into make, model and storage.

    >>> parse_device_name("SAMSUNG GALAXY S23 256GB BLACK")
    ParsedDevice(make='Samsung', model='Galaxy S23', storage='256GB')
    """
    if not device_name or not device_name.strip():
        return ParsedDevice("Unknown", "Unknown")

    normalized = device_name.strip().upper()
    if normalized.startswith("SWAP "):
        normalized = normalized[5:]

    storage = None
    storage_match = _STORAGE_TOKEN_RE.search(normalized)
    if storage_match:
        storage = f"{storage_match.group(1)}GB"
        normalized = normalized.replace(storage_match.group(0), "", 1).strip()

    if "IPHONE" in normalized:
        match = _IPHONE_RE.search(normalized)
        model = f"iPhone {_title(match.group(1))}" if match else "iPhone"
        return ParsedDevice("Apple", model, storage)

    if "IPAD" in normalized:
        remainder = re.sub(r"^APPLE\s+", "", normalized)
        remainder = _IPAD_NOISE_RE.sub("", remainder)
        return ParsedDevice("Apple", _title(remainder), storage)

    if "WATCH" in normalized:
        remainder = re.sub(r"^APPLE\s+", "", normalized)
        remainder = _WATCH_NOISE_RE.sub("", remainder)
        return ParsedDevice("Apple", _title(remainder), storage)

    if normalized.startswith("SS "):
        normalized = "SAMSUNG " + normalized[3:]

    if "SAMSUNG" in normalized and "GALAXY" in normalized:
        match = _GALAXY_RE.search(normalized)
        model = f"Galaxy {_title(match.group(1))}" if match else "Galaxy"
        return ParsedDevice("Samsung", model, storage)

    if "PIXEL" in normalized:
        match = _PIXEL_RE.search(normalized)
        model = f"Pixel {_title(match.group(1))}" if match else "Pixel"
        return ParsedDevice("Google", model, storage)

    words = normalized.split()
    if words:
        return ParsedDevice(title_word(words[0]), device_name.strip(), storage)
    return ParsedDevice("Unknown", device_name.strip(), storage)


def _bare_storage(upper: str) -> str | None:
    match = _BARE_STORAGE_RE.search(upper)
    return f"{match.group(1)}GB" if match else None


def parse_rogers_device_name(device_name: str | None) -> ParsedDevice:
    """Rogers exports abbreviate Apple models (``IP11PM``, ``IPDP11``, ``IPADAIR128``)."""
    if not device_name or not device_name.strip():
        return ParsedDevice("Unknown", "Unknown")

    upper = device_name.upper()
    compact = re.sub(r"[^A-Z0-9]", "", upper)

    match = _ROGERS_IPAD_PRO_RE.search(compact)
    if match:
        model = f'iPad Pro {match.group(1)}"' if match.group(1) else "iPad Pro"
        return ParsedDevice("Apple", model, _bare_storage(upper))

    match = _ROGERS_IPAD_AIR_RE.search(upper)
    if match:
        storage = f"{match.group(1)}GB" if match.group(1) else None
        return ParsedDevice("Apple", "iPad Air", storage)

    match = _IPAD_PRO_FULL_RE.search(upper)
    if match:
        model = f"iPad Pro {match.group(1)}" if match.group(1) else "iPad Pro"
        return ParsedDevice("Apple", model, _bare_storage(upper))

    match = _IPAD_COMPACT_RE.search(upper)
    if match:
        subtype = {"PRO": "Pro", "MINI": "mini"}.get(match.group(1), match.group(1))
        storage = f"{match.group(2)}GB" if match.group(2) else None
        model = f"iPad {subtype}".strip() if subtype else "iPad"
        return ParsedDevice("Apple", model, storage)

    match = _ROGERS_IPHONE_RE.search(upper)
    if match:
        suffix = _IPHONE_SUFFIXES.get(match.group(2) or "", "")
        return ParsedDevice("Apple", f"iPhone {match.group(1)}{suffix}", _bare_storage(upper))

    match = _BARE_GALAXY_RE.match(upper)
    if match:
        storage_match = re.search(r"(\d+)GB", upper)
        storage = f"{storage_match.group(1)}GB" if storage_match else None
        return ParsedDevice("Samsung", f"Galaxy {match.group(1)}", storage)

    parsed = parse_device_name(device_name)
    if parsed.make in ("Unknown", "Other"):
        for needle, make in (
            ("SAMSUNG", "Samsung"),
            ("APPLE", "Apple"),
            ("GOOGLE", "Google"),
            ("ONEPLUS", "OnePlus"),
            ("HUAWEI", "Huawei"),
        ):
            if needle in upper:
                return ParsedDevice(make, parsed.model, parsed.storage)
    return parsed

"""Asset tag generation."""

from __future__ import annotations

import random
import string
import time

TAG_PREFIXES = {
    "LAPTOP": "LT",
    "DESKTOP": "DT",
    "PHONE": "PH",
    "SERVER": "SV",
}
DEFAULT_TAG_PREFIX = "AS"
MAX_TAG_LENGTH = 100

_ALPHABET = string.ascii_uppercase + string.digits


def random_suffix(length: int = 3) -> str:
    return "".join(random.choices(_ALPHABET, k=length))


def time_component() -> str:
    """Last six digits of the current epoch milliseconds."""
    return str(time.time_ns() // 1_000_000)[-6:]


def _fit(base: str, suffix: str) -> str:
    room = MAX_TAG_LENGTH - len(suffix)
    return base[:room] + suffix


def generate_asset_tag(asset_type: str | None, index: int) -> str:
    """``LT-123456-X7Q-004``: type prefix, time, random, 1-based row index."""
    prefix = TAG_PREFIXES.get((asset_type or "").upper(), DEFAULT_TAG_PREFIX)
    return f"{prefix}-{time_component()}-{random_suffix()}-{index + 1:03d}"


def phone_asset_tag(owner_name: str | None, serial_number: str | None = None) -> str:
    """``PH-First Last-1234`` when the owner is known, else ``PH-<time>-<random>``.

    The suffix is the serial number tail so one person with several
    devices gets one tag per device.
    """
    parts = (owner_name or "").split()
    if not parts:
        return f"PH-{time_component()}-{random_suffix()}"
    name = f"{parts[0]} {parts[-1]}" if len(parts) >= 2 else parts[0]
    tail = "".join(ch for ch in (serial_number or "") if ch.isalnum())[-4:].upper()
    return _fit(f"PH-{name}", f"-{tail or random_suffix()}")


def regenerate_tag(base_tag: str) -> str:
    return _fit(base_tag, f"-{random_suffix()}")


def superseded_tag(tag: str) -> str:
    return _fit(tag, f"-SUPERSEDED-{random_suffix(4)}")

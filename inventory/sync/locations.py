"""Fuzzy matching of free-text office labels to Location records."""

from __future__ import annotations

import logging
import uuid
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.location import Location

logger = logging.getLogger(__name__)

# Site codes and airport codes seen in exports and server names.
LOCATION_ABBREVIATIONS: dict[str, tuple[str, ...]] = {
    "cal": ("calgary",),
    "van": ("vancouver",),
    "yvr": ("vancouver",),
    "yyz": ("toronto",),
    "tor": ("toronto",),
    "mtl": ("montreal",),
    "ott": ("ottawa",),
    "wpg": ("winnipeg",),
    "edm": ("edmonton",),
    "vic": ("victoria",),
    "hal": ("halifax",),
    "stj": ("st. john's", "st johns"),
}

_MIN_PARTIAL_LENGTH = 4


def _match_one(label: str, locations: list[Location]) -> tuple[Location | None, str]:
    normalized = label.lower().strip()

    for loc in locations:
        if loc.city.lower() == normalized:
            return loc, "exact city"

    for city_name in LOCATION_ABBREVIATIONS.get(normalized, ()):
        for loc in locations:
            if loc.city.lower() == city_name:
                return loc, f"abbreviation {normalized!r}"

    if len(normalized) >= _MIN_PARTIAL_LENGTH:
        for loc in locations:
            city = loc.city.lower()
            if city in normalized or normalized in city:
                return loc, "partial city"

    if "," in normalized:
        city_part, _, province_part = (p.strip() for p in normalized.partition(","))
        for loc in locations:
            province = loc.province.lower()
            if loc.city.lower() != city_part:
                continue
            if (
                province == province_part
                or province.startswith(province_part)
                or province[:2] in province_part
            ):
                return loc, "city and province"

    return None, ""


async def match_locations(db: AsyncSession, labels: Iterable[str | None]) -> dict[str, uuid.UUID | None]:
    """Map each distinct trimmed label to an active location id, or None.

    Strategies in order: exact city, abbreviation table, partial city
    (labels of four characters or more), then "City, Province".
    """
    uniques = list(dict.fromkeys(s.strip() for s in labels if s and s.strip()))
    if not uniques:
        return {}

    stmt = select(Location).where(Location.is_active.is_(True)).order_by(Location.city)
    locations = list((await db.execute(stmt)).scalars().all())
    logger.info("Matching %d location labels against %d locations", len(uniques), len(locations))

    result: dict[str, uuid.UUID | None] = {}
    for label in uniques:
        match, reason = _match_one(label, locations)
        if match is None:
            logger.warning("No location match for %r", label)
            result[label] = None
        else:
            logger.debug("Location %r matched %s (%s)", label, match.label, reason)
            result[label] = match.id

    matched = sum(1 for v in result.values() if v is not None)
    logger.info("Location matching complete: %d/%d matched", matched, len(uniques))
    return result

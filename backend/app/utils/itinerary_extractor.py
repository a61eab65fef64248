# backend/app/utils/itinerary_extractor.py

import json
import re
from datetime import date, timedelta
from typing import Any, Dict, Iterator, Optional

from pydantic import ValidationError

from app.core.logger import logger
from app.models.itinerary_models import Day, Itinerary, ItineraryItem


ITINERARY_MARKER = "<!--ITINERARY_JSON-->"

JSON_FENCE_RE = re.compile(r"```[ \t]*json[ \t]*\r?\n?(.*?)```", re.DOTALL | re.IGNORECASE)
ANY_FENCE_RE = re.compile(r"```[^\n`]*\r?\n?(.*?)```", re.DOTALL)
BARE_DAYS_RE = re.compile(r'\{\s*"days"\s*:')


# -------------------------------------------------------------
# CANDIDATE SEARCH
# -------------------------------------------------------------
def _candidate_region(text: str) -> str:
    idx = text.find(ITINERARY_MARKER)
    if idx == -1:
        return text
    return text[idx + len(ITINERARY_MARKER):]


def _fenced_candidates(region: str) -> Iterator[str]:
    for pattern in (JSON_FENCE_RE, ANY_FENCE_RE):
        for match in pattern.finditer(region):
            yield match.group(1)


def _bare_candidates(region: str) -> Iterator[Any]:
    decoder = json.JSONDecoder()
    for match in BARE_DAYS_RE.finditer(region):
        try:
            obj, _ = decoder.raw_decode(region, match.start())
        except json.JSONDecodeError:
            continue
        yield obj


def _iter_payloads(region: str) -> Iterator[Any]:
    """
    Parsed JSON values in priority order: json-tagged fences, any fence,
    then bare objects that open with a "days" key.
    """
    for block in _fenced_candidates(region):
        try:
            yield json.loads(block.strip())
        except json.JSONDecodeError:
            continue
    yield from _bare_candidates(region)


def find_itinerary_payload(text: str) -> Optional[Dict[str, Any]]:
    region = _candidate_region(text)
    for payload in _iter_payloads(region):
        if isinstance(payload, dict) and isinstance(payload.get("days"), list):
            return payload
    return None


# -------------------------------------------------------------
# LEGACY SHAPE MIGRATION
# -------------------------------------------------------------
def _is_legacy_day(day: Dict[str, Any]) -> bool:
    return "items" not in day and ("activities" in day or "day" in day)


def _is_iso_date(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        date.fromisoformat(value.strip())
    except ValueError:
        return False
    return True


def _derive_date(ordinal: Any, position: int, base: date) -> str:
    # ordinal 1 is the base date; anything unusable falls back to the position
    try:
        return (base + timedelta(days=int(ordinal) - 1)).isoformat()
    except (TypeError, ValueError, OverflowError):
        return (base + timedelta(days=position)).isoformat()


def _migrate_day(day: Dict[str, Any], position: int, base: date) -> Dict[str, Any]:
    """
    Map one day entry onto the canonical {date, items} shape.

    Legacy days carry an ordinal `day` (1 = base date) and an `activities`
    list. A missing or non-ISO date is derived from the ordinal, or from the
    position when there is no usable ordinal.
    """
    migrated = dict(day)

    if not _is_iso_date(migrated.get("date")):
        migrated["date"] = _derive_date(migrated.get("day"), position, base)

    if _is_legacy_day(day):
        migrated["items"] = migrated.pop("activities", [])
    migrated.pop("day", None)
    migrated.pop("activities", None)

    if not isinstance(migrated.get("items"), list):
        migrated["items"] = []
    return migrated


def _migrate_item(item: Dict[str, Any], day_number: int, item_number: int) -> Dict[str, Any]:
    migrated = dict(item)

    if "title" not in migrated and "activity" in migrated:
        migrated["title"] = migrated.pop("activity")
    if "timeRange" not in migrated and "time" in migrated:
        migrated["timeRange"] = migrated.pop("time")
    migrated.pop("activity", None)
    migrated.pop("time", None)

    if not migrated.get("id"):
        migrated["id"] = f"day-{day_number}-item-{item_number}"
    else:
        migrated["id"] = str(migrated["id"])

    if not isinstance(migrated.get("location"), dict):
        migrated.pop("location", None)
    return migrated


# -------------------------------------------------------------
# NORMALIZATION
# -------------------------------------------------------------
def normalize_itinerary(raw: Dict[str, Any], base: date) -> Optional[Itinerary]:
    """
    Canonicalise a model-produced itinerary.

    Items without a usable title are dropped, then days left with no items
    are dropped. Returns None when nothing survives.
    """
    days = []

    for day_index, day in enumerate(raw.get("days") or []):
        if not isinstance(day, dict):
            continue
        migrated_day = _migrate_day(day, day_index, base)

        items = []
        for item_index, item in enumerate(migrated_day["items"]):
            if not isinstance(item, dict):
                continue
            title = item.get("title", item.get("activity"))
            if not isinstance(title, str) or not title.strip():
                continue
            try:
                items.append(ItineraryItem.model_validate(
                    _migrate_item(item, day_index + 1, item_index + 1)
                ))
            except ValidationError as e:
                logger.debug(f"Dropping itinerary item day={day_index + 1} item={item_index + 1}: {e}")

        if not items:
            continue
        try:
            days.append(Day(date=migrated_day["date"], items=items))
        except ValidationError as e:
            logger.debug(f"Dropping itinerary day {day_index + 1}: {e}")

    if not days:
        return None
    return Itinerary(days=days)


def extract_itinerary(text: str, base: date) -> Optional[Itinerary]:
    """
    Find the itinerary JSON in an assistant reply and normalise it.

    Looks after the marker when it is present, otherwise scans the whole
    reply. Returns None when no usable itinerary is found.
    """
    if not text or not text.strip():
        return None

    payload = find_itinerary_payload(text)
    if payload is None:
        logger.debug("No itinerary payload found in assistant reply")
        return None

    itinerary = normalize_itinerary(payload, base)
    if itinerary is None:
        logger.debug("Itinerary payload had no usable days after normalization")
    return itinerary

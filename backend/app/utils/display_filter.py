# backend/app/utils/display_filter.py

import json
import re

from app.utils.itinerary_extractor import BARE_DAYS_RE, ITINERARY_MARKER


JSON_BLOCK_RE = re.compile(r"```[ \t]*json[^\n]*\n.*?```", re.DOTALL | re.IGNORECASE)
DAYS_FENCE_RE = re.compile(r"```[^\n`]*\n\s*\{\s*\"days\".*?```", re.DOTALL)
EXTRA_BLANK_LINES_RE = re.compile(r"\n{3,}")


def _strip_bare_days_objects(text: str) -> str:
    decoder = json.JSONDecoder()
    out = []
    pos = 0
    for match in BARE_DAYS_RE.finditer(text):
        if match.start() < pos:
            continue
        try:
            _, end = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        out.append(text[pos:match.start()])
        pos = end
    out.append(text[pos:])
    return "".join(out)


def strip_itinerary_payload(text: str) -> str:
    """
    Text as the user should see it: prose only, no machine-readable itinerary.

    Everything from the marker onward is cut. Replies without the marker get
    a best-effort scrub of JSON fences and bare {"days": ...} objects.
    """
    if not text:
        return text

    idx = text.find(ITINERARY_MARKER)
    if idx != -1:
        return text[:idx].rstrip()

    cleaned = JSON_BLOCK_RE.sub("", text)
    cleaned = DAYS_FENCE_RE.sub("", cleaned)
    cleaned = _strip_bare_days_objects(cleaned)
    cleaned = EXTRA_BLANK_LINES_RE.sub("\n\n", cleaned)
    return cleaned.strip()

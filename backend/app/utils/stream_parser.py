# backend/app/utils/stream_parser.py

import codecs
import json
from typing import AsyncIterable, List, Optional

from app.core.logger import logger


SSE_DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

# checked in this order, first string hit wins
FRAGMENT_FIELDS = ("response", "text", "content")


class StreamLineDecoder:
    """
    Turns byte chunks into complete text lines.

    Decoding is incremental, so a multi-byte character split across two
    chunks is reassembled instead of being replaced. The trailing fragment
    after the last newline is carried over to the next chunk and only
    released by `finish()`.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> List[str]:
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return lines

    def finish(self) -> str:
        """Flush the decoder and hand back whatever never saw a newline."""
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        return rest


def extract_fragment(line: str) -> Optional[str]:
    """
    Pull the text fragment out of one stream line.

    Accepts plain JSON lines and SSE `data:` lines. Returns None for
    blank lines, the `[DONE]` sentinel, anything that is not a JSON object
    and objects without a known text field.
    """
    payload = line.strip()
    if not payload:
        return None

    if payload.startswith(SSE_DATA_PREFIX):
        payload = payload[len(SSE_DATA_PREFIX):].strip()
    if not payload or payload == DONE_SENTINEL:
        return None

    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        # framing noise (event:, id:, comments) is expected
        return None

    if not isinstance(data, dict):
        return None

    for field in FRAGMENT_FIELDS:
        value = data.get(field)
        if isinstance(value, str):
            return value

    delta = data.get("delta")
    if isinstance(delta, dict) and isinstance(delta.get("content"), str):
        return delta["content"]

    # raw OpenAI chat.completion.chunk
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        delta = choices[0].get("delta")
        if isinstance(delta, dict) and isinstance(delta.get("content"), str):
            return delta["content"]

    return None


async def accumulate_stream(chunks: AsyncIterable[bytes]) -> str:
    """Read the whole stream once and return the concatenated text."""
    decoder = StreamLineDecoder()
    parts: List[str] = []
    line_count = 0

    async for chunk in chunks:
        for line in decoder.feed(chunk):
            line_count += 1
            fragment = extract_fragment(line)
            if fragment:
                parts.append(fragment)

    rest = decoder.finish()
    if rest.strip():
        line_count += 1
        fragment = extract_fragment(rest)
        if fragment:
            parts.append(fragment)

    text = "".join(parts)
    logger.debug(f"Stream accumulated: {line_count} line(s), {len(parts)} fragment(s), {len(text)} chars")
    return text

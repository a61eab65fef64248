# backend/app/core/llm.py

import json
from dataclasses import dataclass, field
from functools import lru_cache
from typing import AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from app.core.config_loader import settings
from app.core.logger import logger


NDJSON_HEADERS = {
    "content-type": "application/x-ndjson; charset=utf-8",
    "cache-control": "no-cache",
    "x-accel-buffering": "no",
}


@dataclass
class ModelStream:
    """
    A model reply that is still being generated.

    `body` yields raw bytes, one NDJSON line per token batch
    ({"response": "..."}); `headers` are the ones the client should see.
    """
    body: AsyncIterator[bytes]
    headers: Dict[str, str] = field(default_factory=lambda: dict(NDJSON_HEADERS))
    status_code: int = 200


@lru_cache()
def get_client() -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.OPENAI_BASE_URL,
    )


def encode_fragment(text: str) -> bytes:
    return (json.dumps({"response": text}, ensure_ascii=False) + "\n").encode("utf-8")


# ---------------------------------------------------------------------------
# STREAMING CHAT COMPLETION
# ---------------------------------------------------------------------------
async def stream_chat_completion(
    messages: List[Dict[str, str]],
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
) -> ModelStream:
    """
    Start a streaming completion and return its body as NDJSON bytes.

    The request is sent before this returns, so connection and API errors
    raise here; errors in the middle of the stream surface from `body`.
    """
    model = model or settings.chat_model
    completion = await get_client().chat.completions.create(
        model=model,
        messages=messages,
        max_tokens=max_tokens or settings.max_tokens,
        temperature=settings.temperature if temperature is None else temperature,
        stream=True,
    )
    logger.info(f"Model stream opened: model={model}, messages={len(messages)}")

    async def body() -> AsyncIterator[bytes]:
        try:
            async for chunk in completion:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield encode_fragment(delta)
        finally:
            await completion.close()

    return ModelStream(body=body())

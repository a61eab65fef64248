# backend/app/services/stream_fanout.py

import asyncio
from typing import AsyncIterator, List

from app.core.logger import logger


_END = object()


class _SourceFailed:
    def __init__(self, error: BaseException):
        self.error = error


class StreamFanout:
    """
    Reads a byte stream exactly once and replays every chunk to N consumers.

    `pump()` is the single producer: it drains the source into a private
    unbounded queue per consumer, so a slow or abandoned consumer never holds
    the others back. If the source raises, each consumer re-raises the same
    error after the chunks it already received.
    """

    def __init__(self, source: AsyncIterator[bytes], copies: int = 2, name: str = "stream"):
        if copies < 1:
            raise ValueError("copies must be >= 1")
        self.name = name
        self._source = source
        self._queues: List[asyncio.Queue] = [asyncio.Queue() for _ in range(copies)]
        self.chunks_read = 0

    async def pump(self):
        try:
            async for chunk in self._source:
                self.chunks_read += 1
                for queue in self._queues:
                    queue.put_nowait(chunk)
        except Exception as e:
            logger.error(f"[{self.name}] source failed after {self.chunks_read} chunk(s): {e}")
            for queue in self._queues:
                queue.put_nowait(_SourceFailed(e))
            return
        for queue in self._queues:
            queue.put_nowait(_END)

    async def _consume(self, queue: asyncio.Queue) -> AsyncIterator[bytes]:
        while True:
            item = await queue.get()
            if item is _END:
                return
            if isinstance(item, _SourceFailed):
                raise item.error
            yield item

    def consumers(self) -> List[AsyncIterator[bytes]]:
        return [self._consume(queue) for queue in self._queues]

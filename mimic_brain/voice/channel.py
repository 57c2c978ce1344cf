"""
Bounded utterance channel between the ingest pipeline and the orchestrator.

The producer never blocks: when the channel is full the oldest queued
utterance is dropped to make room for the newest one.
"""

import asyncio
import logging

from .segmenter import Utterance

logger = logging.getLogger("mimic.voice.channel")


class UtteranceChannel:
    """Drop-oldest bounded queue of Utterance values."""

    def __init__(self, maxsize: int = 16):
        if maxsize <= 0:
            raise ValueError("maxsize must be > 0")
        self._queue: asyncio.Queue[Utterance] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def put_nowait(self, utterance: Utterance) -> None:
        """Enqueue without blocking, evicting the oldest entry when full."""
        if self._queue.full():
            evicted = self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                "Utterance channel full; dropped oldest utterance from speaker %s (dropped=%d)",
                evicted.speaker_id, self.dropped,
            )
        self._queue.put_nowait(utterance)

    async def get(self) -> Utterance:
        return await self._queue.get()

    def qsize(self) -> int:
        return self._queue.qsize()

    def clear(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

"""
Playback slot for the voice pipeline.

Wraps the transport's single-slot audio sink. Under the ``drop`` policy a
reply offered while another is playing is refused; under ``queue`` it is
played after the current one finishes. Every file handed to the slot is
deleted once it has played, failed or been refused.
"""

import asyncio
import logging
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Optional

from ..utils.tempfiles import delete_quietly
from .transport import AudioSink, PlayerState

logger = logging.getLogger("mimic.voice.playback")


class PlaybackPolicy(str, Enum):
    DROP = "drop"
    QUEUE = "queue"


class PlaybackSlot:
    """Single-occupancy playback with delete-after-play."""

    def __init__(self, sink: AudioSink, policy: PlaybackPolicy = PlaybackPolicy.DROP):
        self.sink = sink
        self.policy = PlaybackPolicy(policy)
        self._current: Optional[Path] = None
        self._pending: deque[Path] = deque()
        self._idle = asyncio.Event()
        self._idle.set()
        sink.add_state_listener(self._on_state)

    @property
    def busy(self) -> bool:
        return self._current is not None

    @property
    def accepting(self) -> bool:
        """Whether a new reply would be played (now or later)."""
        if self.policy is PlaybackPolicy.QUEUE:
            return True
        return not self.busy

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def current(self) -> Optional[Path]:
        return self._current

    def play(self, path: Path) -> bool:
        """Offer ``path`` for playback. False if refused (file is deleted)."""
        path = Path(path)
        if self.busy:
            if self.policy is PlaybackPolicy.QUEUE:
                self._pending.append(path)
                logger.info("Queued %s (%d pending)", path.name, len(self._pending))
                return True
            logger.info("Playback busy, dropping %s", path.name)
            delete_quietly(path)
            return False
        self._start(path)
        return True

    def _start(self, path: Path) -> None:
        self._current = path
        self._idle.clear()
        try:
            self.sink.play(path)
        except Exception:
            self._finish()
            raise
        logger.info("Playing %s", path.name)

    def _finish(self) -> None:
        if self._current is not None:
            delete_quietly(self._current)
            self._current = None
        if not self._pending:
            self._idle.set()

    def _on_state(self, state: PlayerState) -> None:
        if state is PlayerState.PLAYING or self._current is None:
            return
        if state is PlayerState.ERROR:
            logger.warning("Playback error on %s", self._current.name)
        self._finish()
        while self._pending:
            path = self._pending.popleft()
            try:
                self._start(path)
                return
            except Exception as e:
                logger.error("Failed to start queued playback of %s: %s", path.name, e)
        self._idle.set()

    def stop(self) -> None:
        """Stop playback and discard anything queued."""
        while self._pending:
            delete_quietly(self._pending.popleft())
        if self._current is not None:
            self.sink.stop()
        # Sinks that do not report IDLE on stop
        self._finish()
        self._idle.set()

    async def wait_idle(self) -> None:
        """Wait until nothing is playing or queued."""
        await self._idle.wait()

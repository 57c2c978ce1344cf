"""
One joined voice session: wires the receiver, orchestrator, response lock
and playback slot to a transport and owns their background tasks.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from ..storage.response_lock import ResponseLock
from ..utils.tempfiles import cleanup_stale_files
from .orchestrator import ConversationOrchestrator
from .playback import PlaybackSlot
from .receiver import VoiceReceiver
from .transport import VoiceTransport

logger = logging.getLogger("mimic.voice.session")


class VoiceSession:
    """Lifecycle owner for the components of a single voice session."""

    def __init__(
        self,
        transport: VoiceTransport,
        receiver: VoiceReceiver,
        orchestrator: ConversationOrchestrator,
        lock: ResponseLock,
        playback: PlaybackSlot,
        lock_sweep_interval_s: float = 5.0,
        temp_dir: Optional[Path] = None,
        temp_cleanup_interval_s: float = 1800.0,
        temp_max_age_s: float = 3600.0,
    ):
        self.transport = transport
        self.receiver = receiver
        self.orchestrator = orchestrator
        self.lock = lock
        self.playback = playback
        self.lock_sweep_interval_s = lock_sweep_interval_s
        self.temp_dir = temp_dir
        self.temp_cleanup_interval_s = temp_cleanup_interval_s
        self.temp_max_age_s = temp_max_age_s
        self._tasks: list[asyncio.Task] = []
        self._running = False

    @property
    def key(self) -> str:
        return self.transport.session_key

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self.transport.add_speaking_listener(
            self.receiver.on_speaking_start, self.receiver.on_speaking_end
        )
        self._tasks = [
            asyncio.create_task(self.orchestrator.run(), name=f"consumer-{self.key}"),
            asyncio.create_task(self.lock.run_sweeper(self.lock_sweep_interval_s), name=f"lock-sweep-{self.key}"),
        ]
        if self.orchestrator.silence_filler_enabled:
            self._tasks.append(
                asyncio.create_task(self.orchestrator.run_silence_watchdog(), name=f"silence-{self.key}")
            )
        if self.temp_dir is not None:
            self._tasks.append(
                asyncio.create_task(self._run_temp_cleanup(), name=f"temp-cleanup-{self.key}")
            )
        self._running = True
        logger.info(
            "Voice session %s started (bot=%s, persona=%s, mode=%s)",
            self.key,
            self.orchestrator.bot_id,
            self.orchestrator.state.persona_key,
            self.orchestrator.state.mode.value,
        )

    async def _run_temp_cleanup(self) -> None:
        while True:
            await asyncio.sleep(self.temp_cleanup_interval_s)
            try:
                cleanup_stale_files(self.temp_dir, self.temp_max_age_s)
            except OSError as e:
                logger.warning("Temp cleanup failed for %s: %s", self.temp_dir, e)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self.receiver.stop()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self.orchestrator.drain()
        self.playback.stop()
        self.orchestrator.channel.clear()
        self.orchestrator.reset()
        logger.info("Voice session %s stopped", self.key)

"""
Per-speaker audio ingest.

On a speaking-start signal the receiver subscribes to that speaker's
encoded frames, decodes them to PCM and buffers the result. The buffer is
handed to the segmenter a short debounce after speaking stops, a slightly
longer delay after the transport ends the stream, or immediately once it
reaches the maximum recording length. Accepted utterances go to the
bounded utterance channel.

A failure in one speaker's stream or decoder tears down only that
speaker's session.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from .channel import UtteranceChannel
from .segmenter import UtteranceSegmenter
from .transport import FrameDecoder, VoiceTransport

logger = logging.getLogger("mimic.voice.receiver")


@dataclass
class SpeakerSession:
    """Capture state for one actively speaking participant."""

    speaker_id: str
    decoder: FrameDecoder
    chunks: list[bytes] = field(default_factory=list)
    byte_count: int = 0
    pump_task: Optional[asyncio.Task] = None
    end_timer: Optional[asyncio.TimerHandle] = None

    def append(self, pcm: bytes) -> None:
        self.chunks.append(pcm)
        self.byte_count += len(pcm)

    def pcm(self) -> bytes:
        return b"".join(self.chunks)


class VoiceReceiver:
    """Turns speaking events and frame streams into utterances."""

    def __init__(
        self,
        transport: VoiceTransport,
        segmenter: UtteranceSegmenter,
        channel: UtteranceChannel,
        decoder_factory: Callable[[], FrameDecoder],
        speaking_end_debounce_ms: int = 250,
        stream_end_delay_ms: int = 500,
        silence_end_ms: int = 500,
        max_recording_ms: int = 30000,
    ):
        self.transport = transport
        self.segmenter = segmenter
        self.channel = channel
        self.decoder_factory = decoder_factory
        self.speaking_end_debounce = speaking_end_debounce_ms / 1000.0
        self.stream_end_delay = stream_end_delay_ms / 1000.0
        self.silence_end_ms = silence_end_ms
        bytes_per_second = segmenter.sample_rate * segmenter.channels * (segmenter.bit_depth // 8)
        self.max_bytes = int(bytes_per_second * max_recording_ms / 1000)
        self._sessions: dict[str, SpeakerSession] = {}

    @property
    def active_speakers(self) -> list[str]:
        return list(self._sessions)

    # ------------------------------------------------------------------
    # Transport signals
    # ------------------------------------------------------------------

    def on_speaking_start(self, speaker_id: str) -> None:
        """Begin capture for ``speaker_id``; no-op if already capturing."""
        if speaker_id in self._sessions:
            return

        try:
            decoder = self.decoder_factory()
        except Exception as e:
            logger.error("Could not create decoder for speaker %s: %s", speaker_id, e)
            return

        session = SpeakerSession(speaker_id=speaker_id, decoder=decoder)
        self._sessions[speaker_id] = session
        session.pump_task = asyncio.get_running_loop().create_task(
            self._pump(session), name=f"voice-pump-{speaker_id}"
        )
        logger.debug("Speaker %s started speaking", speaker_id)

    def on_speaking_end(self, speaker_id: str) -> None:
        """Schedule segmentation after the speaking-end debounce."""
        session = self._sessions.get(speaker_id)
        if session is None:
            return
        logger.debug("Speaker %s stopped speaking", speaker_id)
        self._schedule_finalize(session, self.speaking_end_debounce)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _schedule_finalize(self, session: SpeakerSession, delay: float) -> None:
        if session.end_timer is not None:
            session.end_timer.cancel()
        session.end_timer = asyncio.get_running_loop().call_later(
            delay, self._finalize, session
        )

    async def _pump(self, session: SpeakerSession) -> None:
        speaker_id = session.speaker_id
        try:
            stream = self.transport.subscribe(
                speaker_id, end_after_silence_ms=self.silence_end_ms
            )
            async for frame in stream:
                pcm = session.decoder.decode(frame)
                if pcm:
                    session.append(pcm)
                if session.byte_count >= self.max_bytes:
                    logger.info(
                        "Speaker %s reached max recording length, finalizing", speaker_id
                    )
                    self._finalize(session)
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Audio stream error for speaker %s: %s", speaker_id, e)
            self._teardown(session)
            return

        if self._sessions.get(speaker_id) is not session:
            return
        if session.byte_count == 0:
            logger.debug("Stream for speaker %s ended with no audio", speaker_id)
            self._teardown(session)
            return
        logger.debug("Audio stream ended for speaker %s", speaker_id)
        self._schedule_finalize(session, self.stream_end_delay)

    def _finalize(self, session: SpeakerSession) -> None:
        """Segment the session's buffer and end the session."""
        if self._sessions.get(session.speaker_id) is not session:
            return
        pcm = session.pcm()
        self._teardown(session)
        if not pcm:
            logger.debug("No audio data to process for speaker %s", session.speaker_id)
            return
        utterance = self.segmenter.segment(session.speaker_id, pcm)
        if utterance is not None:
            self.channel.put_nowait(utterance)

    def _teardown(self, session: SpeakerSession) -> None:
        if self._sessions.get(session.speaker_id) is session:
            del self._sessions[session.speaker_id]
        if session.end_timer is not None:
            session.end_timer.cancel()
            session.end_timer = None
        task = session.pump_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        session.chunks.clear()
        try:
            self.transport.unsubscribe(session.speaker_id)
        except Exception as e:
            logger.debug("Unsubscribe failed for speaker %s: %s", session.speaker_id, e)
        try:
            session.decoder.close()
        except Exception as e:
            logger.debug("Decoder close failed for speaker %s: %s", session.speaker_id, e)

    def stop(self) -> None:
        """Abandon every open speaker session without segmenting."""
        for session in list(self._sessions.values()):
            self._teardown(session)
        logger.info("Voice receiver stopped")

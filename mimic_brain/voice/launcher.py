"""
Voice session launcher for Mimic Brain.

Builds voice sessions from settings and keeps the process-wide registry
of open sessions used by the API.
"""

import logging
from typing import Callable, Optional

from ..config import Settings, settings as default_settings
from ..services.llm.openai_chat import OpenAIChatGenerator
from ..services.protocols import SpeechSynthesizer, TextGenerator, Transcriber
from ..services.stt.whisper import WhisperTranscriber
from ..services.tts.elevenlabs import ElevenLabsSynthesizer
from ..storage.response_lock import ResponseLock
from .channel import UtteranceChannel
from .orchestrator import ConversationOrchestrator, ReplyMode
from .personas import PersonaBook
from .playback import PlaybackPolicy, PlaybackSlot
from .receiver import VoiceReceiver
from .segmenter import UtteranceSegmenter
from .session import VoiceSession
from .transport import FrameDecoder, OpusFrameDecoder, VoiceTransport

logger = logging.getLogger("mimic.voice.launcher")


class SessionRegistry:
    """Open voice sessions keyed by session key."""

    def __init__(self) -> None:
        self._sessions: dict[str, VoiceSession] = {}

    async def open(self, session: VoiceSession) -> VoiceSession:
        if session.key in self._sessions:
            raise ValueError(f"Voice session already open: {session.key}")
        self._sessions[session.key] = session
        await session.start()
        return session

    def get(self, key: str) -> Optional[VoiceSession]:
        return self._sessions.get(key)

    def list(self) -> list[VoiceSession]:
        return list(self._sessions.values())

    async def close(self, key: str) -> bool:
        session = self._sessions.pop(key, None)
        if session is None:
            return False
        await session.stop()
        return True

    async def close_all(self) -> None:
        for key in list(self._sessions):
            await self.close(key)


_registry: Optional[SessionRegistry] = None


def get_session_registry() -> SessionRegistry:
    global _registry
    if _registry is None:
        _registry = SessionRegistry()
    return _registry


def create_voice_session(
    transport: VoiceTransport,
    config: Optional[Settings] = None,
    *,
    transcriber: Optional[Transcriber] = None,
    generator: Optional[TextGenerator] = None,
    synthesizer: Optional[SpeechSynthesizer] = None,
    decoder_factory: Optional[Callable[[], FrameDecoder]] = None,
) -> VoiceSession:
    """Build a VoiceSession for ``transport``.

    Collaborators not passed in are created from ``config`` (the module
    settings by default).
    """
    cfg = config or default_settings
    audio, conv = cfg.audio, cfg.conversation

    if transcriber is None:
        transcriber = WhisperTranscriber(
            api_key=cfg.stt.api_key,
            base_url=cfg.stt.base_url,
            model=cfg.stt.model,
            language=cfg.stt.language,
            timeout=cfg.stt.timeout,
            max_attempts=cfg.stt.max_attempts,
            backoff_seconds=cfg.stt.backoff_seconds,
            rate_limit_backoff_seconds=cfg.stt.rate_limit_backoff_seconds,
        )
    if generator is None:
        generator = OpenAIChatGenerator(
            api_key=cfg.llm.api_key,
            base_url=cfg.llm.base_url,
            model=cfg.llm.model,
            max_history=cfg.llm.max_history,
            presence_penalty=cfg.llm.presence_penalty,
            frequency_penalty=cfg.llm.frequency_penalty,
            timeout=cfg.llm.timeout,
        )
    if synthesizer is None:
        synthesizer = ElevenLabsSynthesizer(
            api_key=cfg.tts.api_key,
            base_url=cfg.tts.base_url,
            model_id=cfg.tts.model_id,
            temp_dir=cfg.tts.temp_dir,
            stability=cfg.tts.stability,
            similarity_boost=cfg.tts.similarity_boost,
            style=cfg.tts.style,
            use_speaker_boost=cfg.tts.use_speaker_boost,
            timeout=cfg.tts.timeout,
        )
    if decoder_factory is None:
        def decoder_factory() -> FrameDecoder:
            return OpusFrameDecoder(audio.sample_rate, audio.channels)

    channel = UtteranceChannel(audio.utterance_queue_size)
    segmenter = UtteranceSegmenter(
        sample_rate=audio.sample_rate,
        channels=audio.channels,
        bit_depth=audio.bit_depth,
        min_seconds=audio.min_utterance_seconds,
        min_amplitude=audio.min_average_amplitude,
    )
    receiver = VoiceReceiver(
        transport,
        segmenter,
        channel,
        decoder_factory,
        speaking_end_debounce_ms=audio.speaking_end_debounce_ms,
        stream_end_delay_ms=audio.stream_end_delay_ms,
        silence_end_ms=audio.silence_end_ms,
        max_recording_ms=audio.max_recording_ms,
    )
    lock = ResponseLock(
        cfg.lock.lock_dir,
        transport.session_key,
        ttl_seconds=cfg.lock.ttl_seconds,
        max_jitter_ms=cfg.lock.max_jitter_ms,
    )
    playback = PlaybackSlot(transport.sink, PlaybackPolicy(conv.playback_policy))
    personas = PersonaBook(cfg.persona.personas, cfg.persona.default)

    orchestrator = ConversationOrchestrator(
        session_key=transport.session_key,
        bot_id=conv.bot_id,
        channel=channel,
        lock=lock,
        playback=playback,
        transcriber=transcriber,
        generator=generator,
        synthesizer=synthesizer,
        personas=personas,
        transport=transport,
        mode=ReplyMode(conv.default_mode),
        min_transcript_chars=conv.min_transcript_chars,
        tick_chance=conv.tick_chance,
        apology_phrase=conv.apology_phrase,
        silence_filler_enabled=conv.silence_filler_enabled,
        silence_check_interval_s=conv.silence_check_interval_s,
        silence_threshold_s=conv.silence_threshold_s,
        silence_filler_chance=conv.silence_filler_chance,
        transcription_sample_rate=audio.transcription_sample_rate,
        ffmpeg_binary=audio.ffmpeg_binary,
    )

    logger.info(
        "Created voice session %s (policy=%s, lock=%s)",
        transport.session_key, playback.policy.value, lock.path,
    )
    return VoiceSession(
        transport,
        receiver,
        orchestrator,
        lock,
        playback,
        lock_sweep_interval_s=cfg.lock.sweep_interval_seconds,
        temp_dir=cfg.tts.temp_dir,
        temp_cleanup_interval_s=conv.temp_cleanup_interval_s,
        temp_max_age_s=conv.temp_max_age_s,
    )

"""
Shared fakes and fixtures for the voice pipeline tests.
"""

import asyncio
import random
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

import numpy as np
import pytest

from mimic_brain.config import PersonaProfile, _default_personas
from mimic_brain.storage.response_lock import ResponseLock
from mimic_brain.voice.channel import UtteranceChannel
from mimic_brain.voice.orchestrator import ConversationOrchestrator, ReplyMode
from mimic_brain.voice.personas import PersonaBook
from mimic_brain.voice.playback import PlaybackPolicy, PlaybackSlot
from mimic_brain.voice.segmenter import Utterance
from mimic_brain.voice.transport import PlayerState


# ---------------------------------------------------------------------------
# Transport fakes
# ---------------------------------------------------------------------------


class FakeSink:
    """Single-slot sink that plays until the test calls finish()."""

    def __init__(self):
        self.played: list[Path] = []
        self.stopped = 0
        self._listeners: list[Callable[[PlayerState], None]] = []

    def play(self, path: Path) -> None:
        self.played.append(Path(path))
        self._emit(PlayerState.PLAYING)

    def stop(self) -> None:
        self.stopped += 1
        self._emit(PlayerState.IDLE)

    def add_state_listener(self, callback: Callable[[PlayerState], None]) -> None:
        self._listeners.append(callback)

    def finish(self, state: PlayerState = PlayerState.IDLE) -> None:
        self._emit(state)

    def _emit(self, state: PlayerState) -> None:
        for cb in list(self._listeners):
            cb(state)


class FakeTransport:
    """In-memory voice transport: frames are pushed per speaker."""

    def __init__(self, session_key: str = "guild-1"):
        self.session_key = session_key
        self._sink = FakeSink()
        self.speaking_listeners: list[tuple] = []
        self.subscriptions: dict[str, asyncio.Queue] = {}
        self.subscribe_calls: list[tuple[str, int]] = []
        self.unsubscribed: list[str] = []
        self.identity_updates: list[tuple[str, Optional[str]]] = []
        self.fail_identity_update = False

    @property
    def sink(self) -> FakeSink:
        return self._sink

    def add_speaking_listener(self, on_start, on_end) -> None:
        self.speaking_listeners.append((on_start, on_end))

    def subscribe(self, speaker_id: str, *, end_after_silence_ms: int) -> AsyncIterator[bytes]:
        self.subscribe_calls.append((speaker_id, end_after_silence_ms))
        queue = self.subscriptions.setdefault(speaker_id, asyncio.Queue())
        return self._stream(queue)

    async def _stream(self, queue: asyncio.Queue) -> AsyncIterator[bytes]:
        while True:
            frame = await queue.get()
            if frame is None:
                return
            if isinstance(frame, Exception):
                raise frame
            yield frame

    def push(self, speaker_id: str, frame) -> None:
        self.subscriptions.setdefault(speaker_id, asyncio.Queue()).put_nowait(frame)

    def end_stream(self, speaker_id: str) -> None:
        self.push(speaker_id, None)

    def unsubscribe(self, speaker_id: str) -> None:
        self.unsubscribed.append(speaker_id)
        queue = self.subscriptions.pop(speaker_id, None)
        if queue is not None:
            queue.put_nowait(None)

    async def update_identity(self, display_name: str, avatar_url: Optional[str]) -> None:
        if self.fail_identity_update:
            raise RuntimeError("missing permissions")
        self.identity_updates.append((display_name, avatar_url))


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeTranscriber:
    """Returns queued results in order; the last one repeats."""

    def __init__(self, *results, delay: float = 0.0):
        self.results = list(results) or [""]
        self.delay = delay
        self.calls: list[bytes] = []

    async def transcribe(self, wav_bytes: bytes) -> str:
        self.calls.append(wav_bytes)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results[0] if len(self.results) == 1 else self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class FakeGenerator:
    def __init__(self, reply: str = "sure thing"):
        self.reply = reply
        self.calls: list[tuple[str, str, PersonaProfile]] = []
        self.cleared: list[str] = []
        self.clear_all_calls = 0

    async def generate(self, speaker_id: str, text: str, persona: PersonaProfile) -> str:
        self.calls.append((speaker_id, text, persona))
        return self.reply

    def clear_history(self, speaker_id: str) -> None:
        self.cleared.append(speaker_id)

    def clear_all(self) -> None:
        self.clear_all_calls += 1

    def stats(self, speaker_id: str) -> dict[str, int]:
        n = sum(1 for call in self.calls if call[0] == speaker_id)
        return {"total_messages": 2 * n, "user_messages": n, "assistant_messages": n}


class FakeSynthesizer:
    """Writes a small file per request into ``temp_dir``."""

    def __init__(self, temp_dir: Path, fail: Optional[Exception] = None):
        self.temp_dir = Path(temp_dir)
        self.fail = fail
        self.calls: list[tuple[str, str]] = []

    async def synthesize(self, text: str, voice_id: str) -> Path:
        self.calls.append((text, voice_id))
        if self.fail is not None:
            raise self.fail
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        path = self.temp_dir / f"tts_{len(self.calls)}_{voice_id}.mp3"
        path.write_bytes(b"ID3" + text.encode())
        return path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_pcm():
    """Constant-amplitude PCM16 of the given duration."""

    def _make(seconds: float, amplitude: int = 1000, sample_rate: int = 48000, channels: int = 2) -> bytes:
        n = int(sample_rate * channels * seconds)
        return np.full(n, amplitude, dtype="<i2").tobytes()

    return _make


@pytest.fixture
def make_utterance(make_pcm):
    def _make(speaker_id: str = "user-1", seconds: float = 1.0, amplitude: int = 1000) -> Utterance:
        return Utterance(
            speaker_id=speaker_id,
            pcm=make_pcm(seconds, amplitude),
            sample_rate=48000,
            channels=2,
            bit_depth=16,
            average_amplitude=float(amplitude),
        )

    return _make


@pytest.fixture
def persona_book() -> PersonaBook:
    return PersonaBook(_default_personas(), "connor")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_orchestrator(tmp_path, persona_book):
    """Build an orchestrator wired to fakes; keyword overrides win."""

    def _make(
        *,
        transcriber=None,
        generator=None,
        synthesizer=None,
        transport=None,
        bot_id: str = "bot-a",
        policy: PlaybackPolicy = PlaybackPolicy.DROP,
        max_jitter_ms: int = 0,
        **overrides,
    ) -> ConversationOrchestrator:
        transport = transport or FakeTransport()
        playback = PlaybackSlot(transport.sink, policy)
        lock = ResponseLock(
            tmp_path / "locks",
            transport.session_key,
            ttl_seconds=10.0,
            max_jitter_ms=max_jitter_ms,
            rng=random.Random(bot_id),
        )
        kwargs = dict(
            session_key=transport.session_key,
            bot_id=bot_id,
            channel=UtteranceChannel(8),
            lock=lock,
            playback=playback,
            transcriber=transcriber or FakeTranscriber("hello there"),
            generator=generator or FakeGenerator(),
            synthesizer=synthesizer or FakeSynthesizer(tmp_path / f"tts-{bot_id}"),
            personas=persona_book,
            transport=transport,
            mode=ReplyMode.GENERATE,
            tick_chance=0.0,
            rng=random.Random(0),
        )
        kwargs.update(overrides)
        return ConversationOrchestrator(**kwargs)

    return _make


@pytest.fixture
def session_settings(tmp_path):
    """Settings pointing the lock and temp dirs into ``tmp_path``."""
    from mimic_brain.config import (
        AudioConfig,
        ConversationConfig,
        LockConfig,
        Settings,
        TTSConfig,
    )

    return Settings(
        audio=AudioConfig(speaking_end_debounce_ms=20, stream_end_delay_ms=20),
        lock=LockConfig(lock_dir=tmp_path / "locks", max_jitter_ms=0, sweep_interval_seconds=0.05),
        conversation=ConversationConfig(
            bot_id="bot-a",
            tick_chance=0.0,
            silence_filler_enabled=False,
        ),
        tts=TTSConfig(temp_dir=tmp_path / "tts"),
    )


@pytest.fixture
def make_session(tmp_path, session_settings):
    """Build a VoiceSession over a FakeTransport with fake collaborators."""
    from mimic_brain.voice.launcher import create_voice_session
    from mimic_brain.voice.transport import PcmPassthroughDecoder

    def _make(transport=None, transcriber=None, generator=None, synthesizer=None, config=None):
        return create_voice_session(
            transport or FakeTransport(),
            config or session_settings,
            transcriber=transcriber or FakeTranscriber("hello there"),
            generator=generator or FakeGenerator(),
            synthesizer=synthesizer or FakeSynthesizer(tmp_path / "tts"),
            decoder_factory=PcmPassthroughDecoder,
        )

    return _make

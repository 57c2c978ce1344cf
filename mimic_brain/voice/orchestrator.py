"""
Conversation orchestrator for one voice session.

Consumes utterances from the channel and runs each through the turn
pipeline:

    lock -> transcribe -> dispatch (repeat / address / tick / generate)
         -> synthesize -> playback slot

The cross-process response lock collapses replies to one bot per session;
the local in-progress set keeps a speaker's utterances strictly ordered.
Every failure after the lock is taken turns into one spoken apology, and
the lock and in-progress marker are always released.

A separate silence watchdog drops a scripted remark into long quiet spells.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from ..config import PersonaProfile
from ..services.protocols import SpeechSynthesizer, TextGenerator, Transcriber
from ..storage.response_lock import ResponseLock
from .audio import prepare_for_transcription
from .channel import UtteranceChannel
from .personas import PersonaBook
from .phrases import ACKNOWLEDGEMENTS, SILENCE_REMARKS, TICKS, pick
from .playback import PlaybackSlot
from .segmenter import Utterance
from .transport import VoiceTransport

logger = logging.getLogger("mimic.voice.orchestrator")


class ReplyMode(str, Enum):
    SILENT = "silent"
    REPEAT = "repeat"
    GENERATE = "generate"


class TurnState(str, Enum):
    IDLE = "idle"
    ACQUIRING_LOCK = "acquiring_lock"
    TRANSCRIBING = "transcribing"
    DISPATCHING = "dispatching"
    SYNTHESIZING = "synthesizing"
    PLAYING = "playing"


class TurnOutcome(str, Enum):
    IGNORED = "ignored"
    LOCKED_OUT = "locked_out"
    PLAYBACK_BUSY = "playback_busy"
    DUPLICATE = "duplicate"
    NO_SPEECH = "no_speech"
    REPLIED = "replied"
    NO_REPLY = "no_reply"
    FAILED = "failed"


@dataclass
class ConversationState:
    """Mutable per-session conversation state, owned by the orchestrator."""

    mode: ReplyMode
    persona_key: str
    last_activity: float
    in_progress: set[str] = field(default_factory=set)
    turn_states: dict[str, TurnState] = field(default_factory=dict)
    filler_emitted: bool = False


class ConversationOrchestrator:
    """Turn-taking state machine for a single voice session."""

    def __init__(
        self,
        *,
        session_key: str,
        bot_id: str,
        channel: UtteranceChannel,
        lock: ResponseLock,
        playback: PlaybackSlot,
        transcriber: Transcriber,
        generator: TextGenerator,
        synthesizer: SpeechSynthesizer,
        personas: PersonaBook,
        transport: Optional[VoiceTransport] = None,
        mode: ReplyMode = ReplyMode.GENERATE,
        persona_key: Optional[str] = None,
        min_transcript_chars: int = 2,
        tick_chance: float = 0.1,
        apology_phrase: str = "I'm sorry, I encountered an error processing your message.",
        silence_filler_enabled: bool = True,
        silence_check_interval_s: float = 30.0,
        silence_threshold_s: float = 120.0,
        silence_filler_chance: float = 0.25,
        transcription_sample_rate: Optional[int] = None,
        ffmpeg_binary: str = "ffmpeg",
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.session_key = session_key
        self.bot_id = bot_id
        self.channel = channel
        self.lock = lock
        self.playback = playback
        self.transcriber = transcriber
        self.generator = generator
        self.synthesizer = synthesizer
        self.personas = personas
        self.transport = transport
        self.min_transcript_chars = min_transcript_chars
        self.tick_chance = tick_chance
        self.apology_phrase = apology_phrase
        self.silence_filler_enabled = silence_filler_enabled
        self.silence_check_interval_s = silence_check_interval_s
        self.silence_threshold_s = silence_threshold_s
        self.silence_filler_chance = silence_filler_chance
        self.transcription_sample_rate = transcription_sample_rate
        self.ffmpeg_binary = ffmpeg_binary
        self._rng = rng or random.Random()
        self._clock = clock or time.monotonic
        self._turn_tasks: set[asyncio.Task] = set()

        self.state = ConversationState(
            mode=ReplyMode(mode),
            persona_key=(persona_key or personas.default).lower(),
            last_activity=self._clock(),
        )

    @property
    def persona(self) -> PersonaProfile:
        return self.personas.get(self.state.persona_key)

    # ------------------------------------------------------------------
    # Turn pipeline
    # ------------------------------------------------------------------

    async def handle_utterance(self, utterance: Utterance) -> TurnOutcome:
        """Run one utterance through the turn pipeline."""
        speaker_id = utterance.speaker_id
        state = self.state

        if state.mode is ReplyMode.SILENT:
            return TurnOutcome.IGNORED

        if speaker_id not in state.in_progress:
            state.turn_states[speaker_id] = TurnState.ACQUIRING_LOCK
        if not await self.lock.try_acquire(speaker_id, self.bot_id):
            self._clear_turn_state(speaker_id)
            logger.debug("Another bot is responding; dropping utterance from %s", speaker_id)
            return TurnOutcome.LOCKED_OUT

        marked = False
        try:
            if not self.playback.accepting:
                logger.debug("Playback busy; dropping utterance from %s", speaker_id)
                return TurnOutcome.PLAYBACK_BUSY
            if speaker_id in state.in_progress:
                logger.info("Already processing speaker %s, skipping", speaker_id)
                return TurnOutcome.DUPLICATE

            state.in_progress.add(speaker_id)
            marked = True
            try:
                return await self._run_turn(utterance)
            except Exception:
                logger.error("Error processing utterance from %s", speaker_id, exc_info=True)
                await self._speak_apology()
                return TurnOutcome.FAILED
        finally:
            await self.lock.release(speaker_id, self.bot_id)
            if marked:
                state.in_progress.discard(speaker_id)
            self._clear_turn_state(speaker_id)

    async def _run_turn(self, utterance: Utterance) -> TurnOutcome:
        speaker_id = utterance.speaker_id
        state = self.state

        state.turn_states[speaker_id] = TurnState.TRANSCRIBING
        wav = await prepare_for_transcription(
            utterance, self.transcription_sample_rate, self.ffmpeg_binary
        )
        text = (await self.transcriber.transcribe(wav) or "").strip()
        if len(text) < self.min_transcript_chars:
            logger.debug("Transcription too short or empty for %s, ignoring", speaker_id)
            return TurnOutcome.NO_SPEECH

        logger.info("Speaker %s said: %s", speaker_id, text)
        self.touch()

        state.turn_states[speaker_id] = TurnState.DISPATCHING
        reply = await self._dispatch(speaker_id, text)
        if not reply or not reply.strip():
            logger.info("Empty reply for %s, nothing to say", speaker_id)
            return TurnOutcome.NO_REPLY

        state.turn_states[speaker_id] = TurnState.SYNTHESIZING
        path = await self.synthesizer.synthesize(reply, self.persona.voice_id)

        state.turn_states[speaker_id] = TurnState.PLAYING
        if not self.playback.play(path):
            return TurnOutcome.NO_REPLY
        logger.info("Replied to %s as %s: %s", speaker_id, self.persona.name, reply)
        return TurnOutcome.REPLIED

    async def _dispatch(self, speaker_id: str, text: str) -> str:
        """Choose the reply text for a transcript."""
        mode = self.state.mode
        if mode is ReplyMode.REPEAT:
            return text
        if mode is not ReplyMode.GENERATE:
            return ""

        prompt = text
        address = self.personas.match_address(text)
        if address is not None:
            await self.switch_persona(address.persona_key)
            if len(address.remainder) < self.min_transcript_chars:
                return pick(ACKNOWLEDGEMENTS, self._rng)
            prompt = address.remainder

        if self._rng.random() < self.tick_chance:
            return pick(TICKS, self._rng)
        return await self.generator.generate(speaker_id, prompt, self.persona)

    async def _speak_apology(self) -> None:
        """Best-effort fallback; failures are logged only."""
        try:
            path = await self.synthesizer.synthesize(self.apology_phrase, self.persona.voice_id)
            self.playback.play(path)
        except Exception as e:
            logger.error("Failed to speak apology: %s", e)

    def _clear_turn_state(self, speaker_id: str) -> None:
        if speaker_id not in self.state.in_progress:
            self.state.turn_states.pop(speaker_id, None)

    def touch(self) -> None:
        """Record activity; re-arms the silence filler."""
        self.state.last_activity = self._clock()
        self.state.filler_emitted = False

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def set_mode(self, mode: ReplyMode) -> None:
        mode = ReplyMode(mode)
        if mode is not self.state.mode:
            logger.info("Reply mode: %s -> %s", self.state.mode.value, mode.value)
        self.state.mode = mode

    async def switch_persona(self, key: str) -> bool:
        """Make ``key`` the active persona. False if it is unknown."""
        resolved = self.personas.resolve(key)
        if resolved is None:
            return False
        if resolved == self.state.persona_key:
            return True

        self.state.persona_key = resolved
        profile = self.persona
        self.generator.clear_all()
        logger.info("Switched persona to %s", profile.name)

        if self.transport is not None:
            try:
                await self.transport.update_identity(profile.display_name, profile.avatar_url)
            except Exception as e:
                logger.warning("Could not update display identity to %s: %s", profile.display_name, e)
        return True

    async def say(self, text: str) -> bool:
        """Speak ``text`` in the active persona's voice. False if not played."""
        text = text.strip()
        if not text or not self.playback.accepting:
            return False
        path = await self.synthesizer.synthesize(text, self.persona.voice_id)
        return self.playback.play(path)

    # ------------------------------------------------------------------
    # Silence watchdog
    # ------------------------------------------------------------------

    async def check_silence(self) -> bool:
        """Maybe speak one silence remark. True if one was played."""
        state = self.state
        if state.mode is ReplyMode.SILENT or not self.silence_filler_enabled:
            return False
        if state.filler_emitted:
            return False
        if self._clock() - state.last_activity < self.silence_threshold_s:
            return False
        if self._rng.random() >= self.silence_filler_chance:
            return False
        if self.playback.busy:
            return False

        remark = pick(SILENCE_REMARKS, self._rng)
        logger.info("Breaking the silence: %s", remark)
        path = await self.synthesizer.synthesize(remark, self.persona.voice_id)
        played = self.playback.play(path)
        if played:
            state.filler_emitted = True
        return played

    async def run_silence_watchdog(self) -> None:
        """Run :meth:`check_silence` every check interval until cancelled."""
        while True:
            await asyncio.sleep(self.silence_check_interval_s)
            try:
                await self.check_silence()
            except Exception as e:
                logger.warning("Silence check error: %s", e)

    # ------------------------------------------------------------------
    # Consumer loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Consume the utterance channel, one task per utterance."""
        try:
            while True:
                utterance = await self.channel.get()
                task = asyncio.create_task(
                    self.handle_utterance(utterance),
                    name=f"turn-{utterance.speaker_id}",
                )
                self._turn_tasks.add(task)
                task.add_done_callback(self._turn_tasks.discard)
        finally:
            for task in list(self._turn_tasks):
                task.cancel()

    async def drain(self) -> None:
        """Wait for in-flight turns to finish."""
        if self._turn_tasks:
            await asyncio.gather(*list(self._turn_tasks), return_exceptions=True)

    def reset(self) -> None:
        """Drop all per-session state (session end)."""
        self.state.in_progress.clear()
        self.state.turn_states.clear()
        self.generator.clear_all()

    def snapshot(self) -> dict[str, Any]:
        state = self.state
        return {
            "session_key": self.session_key,
            "bot_id": self.bot_id,
            "mode": state.mode.value,
            "persona": state.persona_key,
            "in_progress": sorted(state.in_progress),
            "turn_states": {k: v.value for k, v in state.turn_states.items()},
            "idle_seconds": round(self._clock() - state.last_activity, 1),
            "filler_emitted": state.filler_emitted,
            "playback_busy": self.playback.busy,
            "playback_pending": self.playback.pending,
            "queued_utterances": self.channel.qsize(),
            "dropped_utterances": self.channel.dropped,
        }

"""
Centralized configuration management using Pydantic Settings.

Configuration is loaded from environment variables with sensible defaults.
Components receive their config section explicitly; the module-level
``settings`` instance is only read by the application entry point and API.
"""

import os
import socket
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_bot_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


class AudioConfig(BaseSettings):
    """Voice capture, endpointing and quality-gate configuration."""

    model_config = SettingsConfigDict(env_prefix="MIMIC_AUDIO_", env_file=".env", extra="ignore")

    # Decoded PCM format delivered by the frame decoder
    sample_rate: int = Field(default=48000, description="Decoded PCM sample rate")
    channels: int = Field(default=2, description="Decoded PCM channel count")
    bit_depth: int = Field(default=16, description="Decoded PCM bit depth")

    # Endpointing
    speaking_end_debounce_ms: int = Field(
        default=250,
        description="Delay after a speaking-stopped signal before segmenting",
    )
    stream_end_delay_ms: int = Field(
        default=500,
        description="Delay after the audio stream ends before segmenting",
    )
    silence_end_ms: int = Field(
        default=500,
        description="Silence after which the transport ends a speaker's stream",
    )
    max_recording_ms: int = Field(
        default=30000,
        description="Finalize a speaker's buffer once it holds this much audio",
    )

    # Quality gates
    min_utterance_seconds: float = Field(
        default=0.5,
        description="Shorter buffers are discarded (keyboard and incidental noise)",
    )
    min_average_amplitude: float = Field(
        default=400.0,
        description="Quieter buffers are discarded (background noise)",
    )

    utterance_queue_size: int = Field(
        default=16,
        description="Capacity of the utterance channel; oldest entries drop when full",
    )

    # Transcoding
    transcription_sample_rate: Optional[int] = Field(
        default=None,
        description="Resample before transcription (None = send at capture rate)",
    )
    ffmpeg_binary: str = Field(default="ffmpeg", description="ffmpeg executable used for resampling")

    @field_validator("bit_depth")
    @classmethod
    def _check_bit_depth(cls, v: int) -> int:
        if v != 16:
            raise ValueError("only 16-bit PCM is supported")
        return v

    @field_validator("channels")
    @classmethod
    def _check_channels(cls, v: int) -> int:
        if v not in (1, 2):
            raise ValueError("channels must be 1 or 2")
        return v


class LockConfig(BaseSettings):
    """Cross-process response lock configuration."""

    model_config = SettingsConfigDict(env_prefix="MIMIC_LOCK_", env_file=".env", extra="ignore")

    lock_dir: Path = Field(
        default=Path("temp"),
        description="Directory shared by every bot process joined to the same voice session",
    )
    ttl_seconds: float = Field(default=10.0, description="Age after which a lock record is stale")
    max_jitter_ms: int = Field(
        default=200,
        description="Upper bound of the random delay before the exclusive create",
    )
    sweep_interval_seconds: float = Field(default=5.0, description="Stale-record sweep period")


class ConversationConfig(BaseSettings):
    """Turn-taking and reply policy configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MIMIC_CONVERSATION_", env_file=".env", extra="ignore"
    )

    bot_id: str = Field(
        default_factory=_default_bot_id,
        description="Identity written into response lock records",
    )
    default_mode: str = Field(default="generate", description="silent, repeat or generate")
    min_transcript_chars: int = Field(
        default=2,
        description="Transcripts shorter than this are treated as noise",
    )
    tick_chance: float = Field(
        default=0.1,
        description="Probability of a scripted tick instead of a generated reply",
    )

    # Silence watchdog
    silence_filler_enabled: bool = Field(default=True, description="Enable scripted silence remarks")
    silence_check_interval_s: float = Field(default=30.0, description="Watchdog period")
    silence_threshold_s: float = Field(
        default=120.0,
        description="Quiet time before a silence remark may fire",
    )
    silence_filler_chance: float = Field(
        default=0.25,
        description="Probability a due silence remark actually fires",
    )

    playback_policy: str = Field(
        default="drop",
        description="drop: refuse replies while playing; queue: play replies in order",
    )
    apology_phrase: str = Field(
        default="I'm sorry, I encountered an error processing your message.",
        description="The single fallback phrase spoken when a turn fails",
    )

    # Temp audio hygiene
    temp_cleanup_interval_s: float = Field(default=1800.0, description="Temp sweep period")
    temp_max_age_s: float = Field(default=3600.0, description="Temp files older than this are deleted")

    @field_validator("default_mode")
    @classmethod
    def _check_mode(cls, v: str) -> str:
        v = v.lower()
        if v not in ("silent", "repeat", "generate"):
            raise ValueError("default_mode must be silent, repeat or generate")
        return v

    @field_validator("playback_policy")
    @classmethod
    def _check_policy(cls, v: str) -> str:
        v = v.lower()
        if v not in ("drop", "queue"):
            raise ValueError("playback_policy must be drop or queue")
        return v


class STTConfig(BaseSettings):
    """Speech-to-text configuration (OpenAI-compatible Whisper API)."""

    model_config = SettingsConfigDict(env_prefix="MIMIC_STT_", env_file=".env", extra="ignore")

    api_key: Optional[str] = Field(default=None, description="API key (or set OPENAI_API_KEY)")
    base_url: str = Field(default="https://api.openai.com/v1", description="API base URL")
    model: str = Field(default="whisper-1", description="Transcription model")
    language: str = Field(default="en", description="Spoken language hint")
    timeout: float = Field(default=60.0, description="Request timeout in seconds")
    max_attempts: int = Field(default=3, description="Attempts before giving up")
    backoff_seconds: float = Field(default=2.0, description="Backoff step for transient errors")
    rate_limit_backoff_seconds: float = Field(default=5.0, description="Backoff step after a 429")


class LLMConfig(BaseSettings):
    """Text generation configuration (OpenAI-compatible chat API)."""

    model_config = SettingsConfigDict(env_prefix="MIMIC_LLM_", env_file=".env", extra="ignore")

    api_key: Optional[str] = Field(default=None, description="API key (or set OPENAI_API_KEY)")
    base_url: str = Field(default="https://api.openai.com/v1", description="API base URL")
    model: str = Field(default="gpt-4-turbo-preview", description="Chat model name")
    timeout: float = Field(default=60.0, description="Request timeout in seconds")
    max_history: int = Field(default=10, description="Messages kept per speaker besides the system prompt")
    presence_penalty: float = Field(default=0.6)
    frequency_penalty: float = Field(default=0.3)


class TTSConfig(BaseSettings):
    """Speech synthesis configuration (ElevenLabs API)."""

    model_config = SettingsConfigDict(env_prefix="MIMIC_TTS_", env_file=".env", extra="ignore")

    api_key: Optional[str] = Field(default=None, description="API key (or set ELEVENLABS_API_KEY)")
    base_url: str = Field(default="https://api.elevenlabs.io/v1", description="API base URL")
    model_id: str = Field(default="eleven_turbo_v2_5", description="Synthesis model")
    timeout: float = Field(default=60.0, description="Request timeout in seconds")
    stability: float = Field(default=0.5)
    similarity_boost: float = Field(default=0.75)
    style: float = Field(default=0.0)
    use_speaker_boost: bool = Field(default=True)
    temp_dir: Path = Field(default=Path("temp"), description="Where synthesized audio is written")


class PersonaProfile(BaseModel):
    """A swappable bundle of display identity, voice and generation parameters."""

    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str
    voice_id: str
    avatar_url: Optional[str] = None
    system_prompt: str
    max_tokens: int = 50
    temperature: float = 0.8
    aliases: tuple[str, ...] = ()


def _default_personas() -> dict[str, PersonaProfile]:
    return {
        "connor": PersonaProfile(
            name="Connor",
            display_name="komradkonnor",
            voice_id="lyiPMkdMbLt0nKed2Ykr",
            system_prompt=(
                "You are Connor, one of the regulars in this voice channel. "
                "Be quick, sarcastic and funny. Keep replies to one short sentence."
            ),
            max_tokens=50,
            temperature=0.9,
        ),
        "elijah": PersonaProfile(
            name="Elijah",
            display_name="QuantumEel",
            voice_id="yDWiHm0cihLY0TqsBrqL",
            system_prompt=(
                "You are Elijah, direct and dry. Play along with the banter "
                "and keep it to one sentence or less."
            ),
            max_tokens=50,
            temperature=0.8,
        ),
        "griffin": PersonaProfile(
            name="Griffin",
            display_name="Fizz",
            voice_id="HJkmvRu5j8gO1ulxFDHa",
            system_prompt=(
                "You are Griffin. Match the vibe of the room, joke around, "
                "and answer in a few words to one sentence."
            ),
            max_tokens=50,
            temperature=0.9,
            aliases=("fizz",),
        ),
    }


class PersonaConfig(BaseSettings):
    """Persona catalogue and the persona active when a session opens."""

    model_config = SettingsConfigDict(env_prefix="MIMIC_PERSONA_", env_file=".env", extra="ignore")

    default: str = Field(default="connor", description="Persona key active on session start")
    personas: dict[str, PersonaProfile] = Field(
        default_factory=_default_personas,
        description="Persona key -> profile (JSON when set from the environment)",
    )

    @field_validator("personas")
    @classmethod
    def _lower_keys(cls, v: dict[str, PersonaProfile]) -> dict[str, PersonaProfile]:
        if not v:
            raise ValueError("at least one persona is required")
        return {key.lower(): profile for key, profile in v.items()}


class Settings(BaseSettings):
    """Application-wide settings."""

    model_config = SettingsConfigDict(
        env_prefix="MIMIC_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    host: str = Field(default="0.0.0.0", description="API bind address")
    port: int = Field(default=8000, description="API port")

    audio: AudioConfig = Field(default_factory=AudioConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    stt: STTConfig = Field(default_factory=STTConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    tts: TTSConfig = Field(default_factory=TTSConfig)
    persona: PersonaConfig = Field(default_factory=PersonaConfig)


# Singleton settings instance
settings = Settings()

"""
Voice pipeline for Mimic Brain.

Per-speaker capture and segmentation, the conversation orchestrator and
the playback slot for one shared voice session.
"""

from .channel import UtteranceChannel
from .launcher import SessionRegistry, create_voice_session, get_session_registry
from .orchestrator import (
    ConversationOrchestrator,
    ConversationState,
    ReplyMode,
    TurnOutcome,
    TurnState,
)
from .personas import AddressMatch, PersonaBook
from .playback import PlaybackPolicy, PlaybackSlot
from .receiver import SpeakerSession, VoiceReceiver
from .segmenter import Utterance, UtteranceSegmenter
from .session import VoiceSession
from .transport import (
    AudioSink,
    FrameDecoder,
    OpusFrameDecoder,
    PcmPassthroughDecoder,
    PlayerState,
    VoiceTransport,
)

__all__ = [
    "AddressMatch",
    "AudioSink",
    "ConversationOrchestrator",
    "ConversationState",
    "FrameDecoder",
    "OpusFrameDecoder",
    "PcmPassthroughDecoder",
    "PersonaBook",
    "PlaybackPolicy",
    "PlaybackSlot",
    "PlayerState",
    "ReplyMode",
    "SessionRegistry",
    "SpeakerSession",
    "TurnOutcome",
    "TurnState",
    "Utterance",
    "UtteranceChannel",
    "UtteranceSegmenter",
    "VoiceReceiver",
    "VoiceSession",
    "VoiceTransport",
    "create_voice_session",
    "get_session_registry",
]

"""
Tests for audio format conversion.

Covers:
1. Stereo to mono downmix (floor semantics)
2. WAV framing and header re-parsing
3. Amplitude and duration helpers
4. ffmpeg resampling and transcription preparation
"""

import struct
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np
import pytest

from mimic_brain.voice.audio import (
    WAV_HEADER_SIZE,
    WAVE_FORMAT_PCM,
    AudioConversionError,
    average_amplitude,
    downmix_stereo_to_mono,
    parse_wav_header,
    pcm_duration_seconds,
    pcm_to_wav_bytes,
    prepare_for_transcription,
    resample_pcm,
)


def _pcm(*samples: int) -> bytes:
    return np.array(samples, dtype="<i2").tobytes()


# ---------------------------------------------------------------------------
# 1. Downmix
# ---------------------------------------------------------------------------


class TestDownmix:
    """Tests for downmix_stereo_to_mono."""

    def test_floor_not_round(self):
        assert downmix_stereo_to_mono(_pcm(100, 101)) == _pcm(100)

    def test_negative_sum_rounds_toward_negative_infinity(self):
        assert downmix_stereo_to_mono(_pcm(-1, 0)) == _pcm(-1)
        assert downmix_stereo_to_mono(_pcm(-3, -4)) == _pcm(-4)

    def test_extremes_do_not_overflow(self):
        out = downmix_stereo_to_mono(_pcm(32767, 32767, -32768, -32768))
        assert out == _pcm(32767, -32768)

    def test_halves_length(self):
        stereo = _pcm(*range(200))
        assert len(downmix_stereo_to_mono(stereo)) == len(stereo) // 2

    def test_trailing_partial_frame_dropped(self):
        assert downmix_stereo_to_mono(_pcm(10, 20, 30)) == _pcm(15)

    def test_empty(self):
        assert downmix_stereo_to_mono(b"") == b""


# ---------------------------------------------------------------------------
# 2. WAV framing
# ---------------------------------------------------------------------------


class TestWavFraming:
    """Tests for pcm_to_wav_bytes and parse_wav_header."""

    def test_stereo_48k_header(self):
        pcm = _pcm(*range(960))
        wav = pcm_to_wav_bytes(pcm, 48000, 2, 16)

        assert len(wav) == WAV_HEADER_SIZE + len(pcm)
        info = parse_wav_header(wav)
        assert info.format_tag == WAVE_FORMAT_PCM
        assert info.channels == 2
        assert info.sample_rate == 48000
        assert info.byte_rate == 48000 * 2 * 2
        assert info.block_align == 4
        assert info.bit_depth == 16
        assert info.data_length == len(pcm)
        assert info.riff_size == 36 + len(pcm)

    def test_payload_follows_header(self):
        pcm = _pcm(1, -1, 2, -2)
        wav = pcm_to_wav_bytes(pcm, 16000)
        assert wav[WAV_HEADER_SIZE:] == pcm

    def test_raw_header_bytes(self):
        wav = pcm_to_wav_bytes(b"\x00\x00" * 4, 16000, 1, 16)
        assert wav[0:4] == b"RIFF"
        assert wav[8:16] == b"WAVEfmt "
        assert struct.unpack_from("<I", wav, 16)[0] == 16
        assert wav[36:40] == b"data"

    def test_deterministic(self):
        pcm = _pcm(5, 6, 7, 8)
        assert pcm_to_wav_bytes(pcm, 48000, 2) == pcm_to_wav_bytes(pcm, 48000, 2)

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_wav_header(b"\x00" * 44)
        with pytest.raises(ValueError):
            parse_wav_header(b"RIFF")


# ---------------------------------------------------------------------------
# 3. Amplitude and duration
# ---------------------------------------------------------------------------


class TestMeasurements:
    def test_average_amplitude_uses_absolute_values(self):
        assert average_amplitude(_pcm(100, -300)) == 200.0

    def test_average_amplitude_handles_min_int16(self):
        assert average_amplitude(_pcm(-32768)) == 32768.0

    def test_average_amplitude_empty(self):
        assert average_amplitude(b"") == 0.0

    def test_duration(self):
        assert pcm_duration_seconds(192000, 48000, 2, 16) == 1.0
        assert pcm_duration_seconds(96000, 48000, 2, 16) == 0.5


# ---------------------------------------------------------------------------
# 4. Resampling
# ---------------------------------------------------------------------------


class TestResample:
    """Tests for the ffmpeg-backed resampler."""

    @pytest.mark.asyncio
    async def test_same_rate_is_identity(self):
        pcm = _pcm(1, 2, 3)
        assert await resample_pcm(pcm, 48000, 48000) is pcm

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        with pytest.raises(AudioConversionError):
            await resample_pcm(_pcm(1, 2), 48000, 16000, ffmpeg_binary="no-such-ffmpeg-binary")

    @pytest.mark.asyncio
    async def test_invokes_ffmpeg_with_pipes(self):
        proc = MagicMock()
        proc.returncode = 0
        proc.communicate = AsyncMock(return_value=(b"\x01\x00", b""))
        with patch(
            "mimic_brain.voice.audio.asyncio.create_subprocess_exec",
            AsyncMock(return_value=proc),
        ) as spawn:
            out = await resample_pcm(_pcm(1, 2, 3, 4), 48000, 16000, channels=1)

        assert out == b"\x01\x00"
        args = spawn.call_args[0]
        assert args[0] == "ffmpeg"
        assert "pipe:0" in args and "pipe:1" in args
        assert args[args.index("-ar", args.index("pipe:0")) + 1] == "16000"

    @pytest.mark.asyncio
    async def test_nonzero_exit(self):
        proc = MagicMock()
        proc.returncode = 1
        proc.communicate = AsyncMock(return_value=(b"", b"Invalid data"))
        with patch(
            "mimic_brain.voice.audio.asyncio.create_subprocess_exec",
            AsyncMock(return_value=proc),
        ):
            with pytest.raises(AudioConversionError):
                await resample_pcm(_pcm(1, 2), 48000, 16000)


class TestPrepareForTranscription:
    @pytest.mark.asyncio
    async def test_stereo_utterance_becomes_mono_wav(self, make_utterance):
        utterance = make_utterance(seconds=0.5)
        wav = await prepare_for_transcription(utterance)

        info = parse_wav_header(wav)
        assert info.channels == 1
        assert info.sample_rate == 48000
        assert info.data_length == len(utterance.pcm) // 2

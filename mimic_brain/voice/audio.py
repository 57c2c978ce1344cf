"""
Audio format conversion for the voice pipeline.

Stateless helpers that turn decoded speaker audio into what the
transcription service expects:
- stereo to mono downmix (floor of the pair average)
- raw PCM to WAV container framing
- resampling, delegated to an ffmpeg subprocess
"""

import asyncio
import io
import logging
import struct
import wave
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from .segmenter import Utterance

logger = logging.getLogger("mimic.voice.audio")

WAV_HEADER_SIZE = 44
WAVE_FORMAT_PCM = 1


class AudioConversionError(Exception):
    """Raised when the external transcoder fails."""


@dataclass(frozen=True)
class WavInfo:
    """Parameters recovered from a canonical 44-byte WAV header."""

    format_tag: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bit_depth: int
    riff_size: int
    data_length: int


def _samples(pcm: bytes) -> np.ndarray:
    """View PCM16 little-endian bytes as int16 samples, ignoring a trailing odd byte."""
    usable = len(pcm) - (len(pcm) % 2)
    return np.frombuffer(pcm[:usable], dtype="<i2")


def downmix_stereo_to_mono(pcm: bytes) -> bytes:
    """Average each interleaved L/R int16 pair into one sample.

    Uses floor((L + R) / 2), so (100, 101) -> 100 and (-1, 0) -> -1.
    A trailing incomplete frame is dropped.
    """
    usable = len(pcm) - (len(pcm) % 4)
    if usable == 0:
        return b""
    frames = np.frombuffer(pcm[:usable], dtype="<i2").reshape(-1, 2).astype(np.int32)
    mono = np.floor_divide(frames[:, 0] + frames[:, 1], 2)
    return mono.astype("<i2").tobytes()


def pcm_to_wav_bytes(
    pcm_bytes: bytes,
    sample_rate: int,
    channels: int = 1,
    bit_depth: int = 16,
) -> bytes:
    """Convert PCM audio to WAV format (44-byte header + payload)."""
    if bit_depth % 8 != 0:
        raise ValueError(f"Unsupported bit depth: {bit_depth}")
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(bit_depth // 8)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm_bytes)
    return buffer.getvalue()


def parse_wav_header(data: bytes) -> WavInfo:
    """Re-parse the header written by :func:`pcm_to_wav_bytes`."""
    if len(data) < WAV_HEADER_SIZE:
        raise ValueError("Data shorter than a WAV header")
    riff, riff_size, wave_tag = struct.unpack_from("<4sI4s", data, 0)
    if riff != b"RIFF" or wave_tag != b"WAVE":
        raise ValueError("Not a RIFF/WAVE container")
    fmt_tag, fmt_size = struct.unpack_from("<4sI", data, 12)
    if fmt_tag != b"fmt " or fmt_size != 16:
        raise ValueError("Unexpected fmt chunk")
    format_tag, channels, sample_rate, byte_rate, block_align, bit_depth = struct.unpack_from(
        "<HHIIHH", data, 20
    )
    data_tag, data_length = struct.unpack_from("<4sI", data, 36)
    if data_tag != b"data":
        raise ValueError("Missing data chunk")
    return WavInfo(
        format_tag=format_tag,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bit_depth=bit_depth,
        riff_size=riff_size,
        data_length=data_length,
    )


def average_amplitude(pcm: bytes) -> float:
    """Mean absolute value of all int16 samples (0.0 for empty input)."""
    samples = _samples(pcm)
    if samples.size == 0:
        return 0.0
    return float(np.abs(samples.astype(np.int32)).mean())


def pcm_duration_seconds(n_bytes: int, sample_rate: int, channels: int, bit_depth: int) -> float:
    """Duration of a PCM buffer of ``n_bytes`` bytes."""
    bytes_per_second = sample_rate * channels * (bit_depth // 8)
    if bytes_per_second <= 0:
        return 0.0
    return n_bytes / bytes_per_second


async def resample_pcm(
    pcm: bytes,
    from_rate: int,
    to_rate: int,
    channels: int = 1,
    ffmpeg_binary: str = "ffmpeg",
) -> bytes:
    """Resample raw s16le PCM through an ffmpeg subprocess.

    Returns the input unchanged when the rates already match.
    """
    if from_rate == to_rate or not pcm:
        return pcm

    args = [
        ffmpeg_binary,
        "-hide_banner",
        "-loglevel", "error",
        "-f", "s16le",
        "-ar", str(from_rate),
        "-ac", str(channels),
        "-i", "pipe:0",
        "-f", "s16le",
        "-ar", str(to_rate),
        "-ac", str(channels),
        "pipe:1",
    ]
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise AudioConversionError(f"ffmpeg not found: {ffmpeg_binary}") from exc

    stdout, stderr = await proc.communicate(pcm)
    if proc.returncode != 0:
        message = stderr.decode(errors="replace").strip()
        logger.error("ffmpeg resample %d->%d failed: %s", from_rate, to_rate, message)
        raise AudioConversionError(f"ffmpeg exited with code {proc.returncode}")

    logger.debug("Resampled %d bytes %dHz -> %d bytes %dHz", len(pcm), from_rate, len(stdout), to_rate)
    return stdout


async def prepare_for_transcription(
    utterance: "Utterance",
    target_rate: int | None = None,
    ffmpeg_binary: str = "ffmpeg",
) -> bytes:
    """Downmix, optionally resample, and frame an utterance as WAV."""
    pcm = utterance.pcm
    channels = utterance.channels
    if channels == 2:
        pcm = downmix_stereo_to_mono(pcm)
        channels = 1

    rate = utterance.sample_rate
    if target_rate and target_rate != rate:
        pcm = await resample_pcm(pcm, rate, target_rate, channels, ffmpeg_binary)
        rate = target_rate

    return pcm_to_wav_bytes(pcm, rate, channels, utterance.bit_depth)

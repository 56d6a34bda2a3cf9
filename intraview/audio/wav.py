"""PCM16 to WAV decoding for completed conversation items"""

import io

import numpy as np
import scipy.io.wavfile as wav

from intraview.config import Config
from intraview.errors import DecodeFailure
from intraview.realtime.items import DecodedAudio


def decode_pcm16(audio: bytes, sample_rate: int = Config.SAMPLE_RATE) -> DecodedAudio:
    """
    Build a playable WAV asset from raw PCM16 LE mono audio.

    Args:
        audio: Accumulated PCM16 bytes for one item
        sample_rate: Sample rate of the audio

    Returns:
        DecodedAudio holding the WAV file bytes

    Raises:
        DecodeFailure: empty or odd-length buffer, or WAV encoding failed
    """
    if not audio:
        raise DecodeFailure("No audio to decode")
    if len(audio) % 2:
        raise DecodeFailure(f"PCM16 buffer has odd length ({len(audio)} bytes)")

    samples = np.frombuffer(bytes(audio), dtype="<i2")
    buffer = io.BytesIO()
    try:
        wav.write(buffer, sample_rate, samples)
    except (ValueError, TypeError) as e:
        raise DecodeFailure(f"WAV encoding failed: {e}") from e

    return DecodedAudio(
        wav=buffer.getvalue(),
        sample_rate=sample_rate,
        sample_count=len(samples),
        pcm_length=len(audio),
    )


def samples_to_ms(sample_count: int, sample_rate: int = Config.SAMPLE_RATE) -> int:
    """Convert a played-sample count to whole milliseconds"""
    return int(sample_count * 1000 // sample_rate)

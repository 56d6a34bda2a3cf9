"""Tests for PCM16 decoding."""

import io

import numpy as np
import pytest
import scipy.io.wavfile as wav

from intraview.audio.wav import decode_pcm16, samples_to_ms
from intraview.errors import DecodeFailure


class TestDecode:

    def test_wav_round_trip_preserves_samples(self):
        samples = np.array([0, 1000, -1000, 32767], dtype=np.int16)
        decoded = decode_pcm16(samples.tobytes(), 24000)

        rate, data = wav.read(io.BytesIO(decoded.wav))
        assert rate == 24000
        assert data.tolist() == samples.tolist()
        assert decoded.pcm_length == 8
        assert decoded.sample_count == 4

    def test_duration(self):
        decoded = decode_pcm16(bytes(48000), 24000)
        assert decoded.duration == pytest.approx(1.0)

    def test_empty_buffer_fails(self):
        with pytest.raises(DecodeFailure):
            decode_pcm16(b"", 24000)

    def test_odd_length_fails(self):
        with pytest.raises(DecodeFailure):
            decode_pcm16(b"\x00\x01\x02", 24000)


class TestSamplesToMs:

    @pytest.mark.parametrize("samples,expected", [(0, 0), (24, 1), (12000, 500), (23, 0), (36000, 1500)])
    def test_conversion(self, samples, expected):
        assert samples_to_ms(samples, 24000) == expected

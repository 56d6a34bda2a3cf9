"""
Tests for StreamPlayer track accounting.

The PortAudio stream is replaced by a MagicMock factory; the output
callback is driven by hand with numpy buffers.
"""

from unittest.mock import MagicMock

import numpy as np
import pytest

from intraview.audio.playback import StreamPlayer, TrackSampleOffset


@pytest.fixture
def player():
    return StreamPlayer(sample_rate=24000, blocksize=4, stream_factory=MagicMock())


def pull(player, frames=4):
    """Run one output callback and return what was written"""
    out = np.zeros((frames, 1), dtype=np.int16)
    player._audio_callback(out, frames, None, None)
    return out[:, 0].tolist()


def pcm(*samples):
    return np.array(samples, dtype="<i2").tobytes()


class TestPlayback:

    def test_silence_when_nothing_queued(self, player):
        assert pull(player) == [0, 0, 0, 0]
        assert player.active_track_id is None

    def test_chunks_span_callbacks(self, player):
        player.add_16bit_pcm(pcm(1, 2, 3), "a1")
        player.add_16bit_pcm(pcm(4, 5, 6), "a1")
        assert pull(player) == [1, 2, 3, 4]
        assert pull(player) == [5, 6, 0, 0]
        assert player.get_track_sample_offset("a1") == 6

    def test_track_inactive_once_drained(self, player):
        player.add_16bit_pcm(pcm(1, 2), "a1")
        assert player.active_track_id == "a1"
        pull(player)
        assert player.active_track_id is None


class TestInterrupt:

    @pytest.mark.asyncio
    async def test_interrupt_without_track(self, player):
        assert await player.interrupt() is None

    @pytest.mark.asyncio
    async def test_interrupt_reports_played_samples(self, player):
        player.add_16bit_pcm(pcm(*range(1, 11)), "a1")
        pull(player)
        pull(player)

        offset = await player.interrupt()

        assert offset == TrackSampleOffset("a1", 8)
        assert pull(player) == [0, 0, 0, 0]

    @pytest.mark.asyncio
    async def test_interrupted_track_drops_late_chunks(self, player):
        player.add_16bit_pcm(pcm(1, 2, 3, 4, 5), "a1")
        pull(player)
        await player.interrupt()

        assert player.add_16bit_pcm(pcm(9, 9), "a1") is False
        assert player.add_16bit_pcm(pcm(7, 7), "a2") is True
        assert pull(player) == [7, 7, 0, 0]

    @pytest.mark.asyncio
    async def test_second_interrupt_is_empty(self, player):
        player.add_16bit_pcm(pcm(1, 2, 3, 4, 5, 6), "a1")
        pull(player)
        assert await player.interrupt() is not None
        assert await player.interrupt() is None


class TestTrackBookkeeping:

    def test_finished_track_forgotten_when_next_plays(self, player):
        player.add_16bit_pcm(pcm(1, 2), "a1")
        player.add_16bit_pcm(pcm(3, 4), "a2")
        pull(player)
        assert player.tracked_track_ids == {"a2"}

    def test_drained_track_forgotten_when_new_track_queued(self, player):
        player.add_16bit_pcm(pcm(1, 2), "a1")
        pull(player)
        player.add_16bit_pcm(pcm(3), "a2")
        assert player.tracked_track_ids == {"a2"}

    @pytest.mark.asyncio
    async def test_interrupt_forgets_tracks(self, player):
        for n in range(50):
            player.add_16bit_pcm(pcm(*range(1, 9)), f"a{n}")
            pull(player)
            assert await player.interrupt() == TrackSampleOffset(f"a{n}", 4)
        assert player.tracked_track_ids == set()
        assert len(player._interrupted_track_ids) <= 1


class TestStream:

    @pytest.mark.asyncio
    async def test_connect_opens_int16_stream(self):
        factory = MagicMock()
        player = StreamPlayer(sample_rate=24000, device=3, stream_factory=factory)
        await player.connect()
        kwargs = factory.call_args.kwargs
        assert kwargs["samplerate"] == 24000
        assert kwargs["dtype"] == "int16"
        assert kwargs["device"] == 3
        factory.return_value.start.assert_called_once()

        await player.close()
        factory.return_value.close.assert_called_once()
        assert not player.connected

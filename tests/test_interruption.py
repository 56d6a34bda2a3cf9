"""Tests for InterruptionCoordinator."""

import pytest

from intraview.audio.playback import TrackSampleOffset
from intraview.session.event_log import EventLogAggregator
from intraview.session.interruption import InterruptionCoordinator


class TestInterruptionCoordinator:

    @pytest.mark.asyncio
    async def test_no_active_track_issues_no_cancel(self, player, client, calls):
        coordinator = InterruptionCoordinator(player, client)
        assert await coordinator.interrupt() is None
        assert [c[0] for c in calls] == ["player.interrupt"]

    @pytest.mark.asyncio
    async def test_active_track_cancels_exactly_once(self, player, client, calls, track):
        player.active = track
        coordinator = InterruptionCoordinator(player, client, sample_rate=24000)

        result = await coordinator.interrupt()

        assert result == track
        cancels = [c for c in calls if c[0] == "client.cancel_response"]
        # 12000 samples at 24kHz = 500ms
        assert cancels == [("client.cancel_response", "a1", 500)]

    @pytest.mark.asyncio
    async def test_interrupt_happens_before_cancel(self, player, client, calls, track):
        player.active = track
        await InterruptionCoordinator(player, client).interrupt()
        assert [c[0] for c in calls] == ["player.interrupt", "client.cancel_response"]

    @pytest.mark.asyncio
    async def test_cancellation_failure_is_swallowed_and_logged(self, player, client, track,
                                                                cancellation_failure):
        player.active = track
        client.cancel_error = cancellation_failure
        log = EventLogAggregator(start_time=0)
        coordinator = InterruptionCoordinator(player, client, event_log=log)

        result = await coordinator.interrupt()

        assert result == track
        assert [e.type_name for e in log] == ["error.cancellation"]
        assert log.entries[0].source == "client"

    @pytest.mark.asyncio
    async def test_cancel_is_not_retried(self, player, client, calls, track, cancellation_failure):
        player.active = track
        client.cancel_error = cancellation_failure
        await InterruptionCoordinator(player, client).interrupt()
        assert len([c for c in calls if c[0] == "client.cancel_response"]) == 1

    @pytest.mark.asyncio
    async def test_server_interruption_notification(self, player, client, calls):
        player.active = TrackSampleOffset("a2", 2400)
        coordinator = InterruptionCoordinator(player, client)
        await coordinator.on_conversation_interrupted({"type": "input_audio_buffer.speech_started"})
        assert ("client.cancel_response", "a2", 100) in calls

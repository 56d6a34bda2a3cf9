"""
Interruption/Cancellation Coordinator.

Stops agent playback and truncates the remote response to what the user
actually heard. Triggered by manual push-to-talk and by the server's
speech_started notification in server VAD mode.
"""

from typing import Optional

from intraview.audio.playback import TrackSampleOffset
from intraview.audio.wav import samples_to_ms
from intraview.config import Config
from intraview.errors import CancellationFailure


class InterruptionCoordinator:
    """Bridges StreamPlayer.interrupt() and RealtimeClient.cancel_response()"""

    def __init__(self, player, client, sample_rate: int = Config.SAMPLE_RATE,
                 event_log=None, metrics: Optional[dict] = None):
        self.player = player
        self.client = client
        self.sample_rate = sample_rate
        self.event_log = event_log
        self.metrics = metrics or {}
        self.logger = Config.LOGGER

    async def interrupt(self) -> Optional[TrackSampleOffset]:
        """
        Stop playback and cancel the response that was playing.

        Returns:
            The interrupted track offset, or None when nothing was playing
            (in which case no cancellation is requested)
        """
        offset = await self.player.interrupt()
        if offset is None:
            return None

        audio_end_ms = samples_to_ms(offset.offset, self.sample_rate)
        if Config.SHOW_TURN_LOGS:
            print(f"✋ Interrupted {offset.track_id} at {audio_end_ms}ms")
        if self.metrics.get("interruptions"):
            self.metrics["interruptions"].add(1)

        try:
            await self.client.cancel_response(offset.track_id, audio_end_ms)
        except Exception as e:
            # Local playback is already stopped; the remote transcript may just run long
            self._log_cancellation_failure(offset, audio_end_ms, e)
        return offset

    async def on_conversation_interrupted(self, event) -> None:
        """Handler for the client's conversation.interrupted notification"""
        await self.interrupt()

    def _log_cancellation_failure(self, offset: TrackSampleOffset, audio_end_ms: int, error: Exception) -> None:
        failure = error if isinstance(error, CancellationFailure) else CancellationFailure(str(error))
        print(f"⚠️  Cancel failed for {offset.track_id}: {failure}")
        if self.metrics.get("cancellation_failures"):
            self.metrics["cancellation_failures"].add(1)
        if self.event_log is not None:
            self.event_log.record("client", {
                "type": "error.cancellation",
                "item_id": offset.track_id,
                "audio_end_ms": audio_end_ms,
                "error": str(failure),
            })
        if self.logger:
            self.logger.warning(
                "cancellation_failed",
                extra={
                    "track_id": offset.track_id,
                    "audio_end_ms": audio_end_ms,
                    "error": str(failure),
                    "error_type": type(error).__name__,
                }
            )

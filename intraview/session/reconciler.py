"""
Conversation Reconciler - streams agent audio and finalizes completed items.

Audio deltas are appended to a per-item buffer and handed to the player in
the same step, so playback is progressive. When an item completes its
buffer is decoded into a WAV asset exactly once. The displayed item list is
always the client's authoritative snapshot, refreshed after every
notification.
"""

from typing import Optional

from intraview.audio.wav import decode_pcm16
from intraview.config import Config
from intraview.errors import DecodeFailure
from intraview.realtime.items import ConversationItem


class ConversationReconciler:
    """Subscribed to conversation.updated and conversation.item.completed/incomplete"""

    def __init__(self, client, player, event_log=None, sample_rate: int = Config.SAMPLE_RATE,
                 metrics: Optional[dict] = None):
        self.client = client
        self.player = player
        self.event_log = event_log
        self.sample_rate = sample_rate
        self.metrics = metrics or {}
        self.logger = Config.LOGGER
        self.items: list[ConversationItem] = []
        self._audio_buffers: dict[str, bytearray] = {}
        self._decoded_ids: set[str] = set()

    def reset(self) -> None:
        self.items = []
        self._audio_buffers = {}
        self._decoded_ids = set()

    def buffered_audio(self, item_id: str) -> bytes:
        return bytes(self._audio_buffers.get(item_id, b""))

    def is_decoded(self, item_id: str) -> bool:
        return item_id in self._decoded_ids

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def on_conversation_updated(self, event: dict) -> None:
        item = event.get("item")
        delta = event.get("delta") or {}
        try:
            if "audio" in delta:
                self._append_audio(item, delta["audio"])
            if "audio_end_ms" in delta:
                self._truncate_audio(item, delta["audio_end_ms"])
        except Exception as e:
            self._log_failure("update", e, item_id=getattr(item, "id", None))
        finally:
            self._refresh()

        if not delta and item is not None and item.id not in {i.id for i in self.items}:
            # Deletion confirmed by the server
            self._audio_buffers.pop(item.id, None)
            self._decoded_ids.discard(item.id)

    async def on_item_completed(self, event: dict) -> None:
        item = event.get("item")
        try:
            self._finalize(item)
        except Exception as e:
            self._log_failure("complete", e, item_id=getattr(item, "id", None))
        finally:
            self._refresh()

    def on_item_incomplete(self, event: dict) -> None:
        """Cancelled responses are never decoded; release their buffer"""
        item = event.get("item")
        if item is not None:
            self._audio_buffers.pop(item.id, None)
        self._refresh()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _append_audio(self, item: ConversationItem, audio: bytes) -> None:
        if not audio:
            return
        self._audio_buffers.setdefault(item.id, bytearray()).extend(audio)
        self.player.add_16bit_pcm(audio, item.id)
        if Config.SHOW_AUDIO_DELTA_LOGS:
            print(f"🔊 {item.id}: +{len(audio)} bytes")

    def _truncate_audio(self, item: ConversationItem, audio_end_ms: int) -> None:
        buffer = self._audio_buffers.get(item.id)
        if buffer is None:
            return
        end = int(audio_end_ms * self.sample_rate / 1000) * 2
        del buffer[end:]

    def _finalize(self, item: ConversationItem) -> None:
        if item.id in self._decoded_ids:
            return
        audio = self._audio_buffers.pop(item.id, None)
        if audio is None:
            audio = item.formatted.audio
        if not audio:
            return

        self._decoded_ids.add(item.id)
        try:
            item.formatted.file = decode_pcm16(bytes(audio), self.sample_rate)
        except DecodeFailure as e:
            # Item stays completed and is shown with its transcript only
            item.formatted.file = None
            if self.metrics.get("decode_failures"):
                self.metrics["decode_failures"].add(1)
            self._log_failure("decode", e, item_id=item.id)
            return

        if self.logger:
            self.logger.info(
                "item_audio_decoded",
                extra={
                    "item_id": item.id,
                    "pcm_bytes": item.formatted.file.pcm_length,
                    "duration_s": round(item.formatted.file.duration, 3),
                }
            )

    def _refresh(self) -> None:
        self.items = self.client.get_items()
        in_progress = [
            i for i in self.items
            if i.role == "assistant" and not i.is_completed
        ]
        if len(in_progress) > 1 and self.logger:
            self.logger.warning(
                "multiple_assistant_items_in_progress",
                extra={"item_ids": [i.id for i in in_progress]}
            )

    def _log_failure(self, stage: str, error: Exception, item_id: Optional[str] = None) -> None:
        print(f"⚠️  Reconcile error ({stage}): {error}")
        if self.event_log is not None:
            self.event_log.record("client", {
                "type": f"error.{stage}",
                "item_id": item_id,
                "error": str(error),
            })
        if self.logger:
            self.logger.error(
                "reconcile_error",
                extra={"stage": stage, "item_id": item_id, "error": str(error), "error_type": type(error).__name__}
            )

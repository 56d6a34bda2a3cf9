"""
RealtimeConversation - authoritative item state built from server events.

Each supported server event mutates the item table and returns an
(item, delta) pair describing what changed. Unknown items or malformed
payloads raise ProtocolError; the caller decides how to surface them.
"""

import base64
from typing import Optional

from intraview.config import Config
from intraview.errors import ProtocolError
from intraview.realtime.items import ConversationItem, FormattedContent, ItemStatus, ToolCall

BYTES_PER_SAMPLE = 2


class RealtimeConversation:
    """Ordered conversation items plus the bookkeeping needed to build them"""

    def __init__(self, sample_rate: int = Config.SAMPLE_RATE):
        self.sample_rate = sample_rate
        self._handlers = {
            "conversation.item.created": self._item_created,
            "conversation.item.truncated": self._item_truncated,
            "conversation.item.deleted": self._item_deleted,
            "conversation.item.input_audio_transcription.completed": self._transcription_completed,
            "input_audio_buffer.speech_started": self._speech_started,
            "input_audio_buffer.speech_stopped": self._speech_stopped,
            "response.created": self._response_created,
            "response.output_item.added": self._output_item_added,
            "response.output_item.done": self._output_item_done,
            "response.content_part.added": self._content_part_added,
            "response.audio_transcript.delta": self._audio_transcript_delta,
            "response.audio.delta": self._audio_delta,
            "response.text.delta": self._text_delta,
            "response.function_call_arguments.delta": self._function_call_arguments_delta,
        }
        self.clear()

    def clear(self) -> None:
        """Drop all items and pending speech/transcript bookkeeping"""
        self.item_lookup: dict[str, ConversationItem] = {}
        self.items: list[ConversationItem] = []
        self.response_lookup: dict[str, dict] = {}
        self.responses: list[dict] = []
        self.queued_speech_items: dict[str, dict] = {}
        self.queued_transcript_items: dict[str, str] = {}
        self.queued_input_audio: Optional[bytes] = None

    def queue_input_audio(self, audio: bytes) -> None:
        """Hold committed input audio until the server creates its user item"""
        self.queued_input_audio = bytes(audio)

    def get_item(self, item_id: str) -> Optional[ConversationItem]:
        return self.item_lookup.get(item_id)

    def get_items(self) -> list[ConversationItem]:
        """Snapshot of the ordered item list"""
        return list(self.items)

    def process_event(self, event: dict, input_audio_buffer: Optional[bytes] = None):
        """
        Apply a server event.

        Args:
            event: Decoded server event (must carry "type")
            input_audio_buffer: Local copy of appended input audio, used to cut
                user speech out when server VAD reports speech_stopped

        Returns:
            (item, delta) tuple; either may be None
        """
        if not isinstance(event, dict) or not event.get("type"):
            raise ProtocolError("Missing event type", event_type=None)
        event_type = event["type"]
        handler = self._handlers.get(event_type)
        if handler is None:
            raise ProtocolError(f"Unsupported conversation event '{event_type}'", event_type=event_type)
        try:
            if event_type == "input_audio_buffer.speech_stopped":
                return handler(event, input_audio_buffer)
            return handler(event)
        except (KeyError, TypeError, IndexError, ValueError) as e:
            raise ProtocolError(f"Malformed '{event_type}' event: {e}", event_type=event_type) from e

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_item(self, item_id: str, event_type: str) -> ConversationItem:
        item = self.item_lookup.get(item_id)
        if item is None:
            raise ProtocolError(f"{event_type}: item '{item_id}' not found", event_type=event_type)
        return item

    def _ms_to_bytes(self, ms: int) -> int:
        return int(ms * self.sample_rate / 1000) * BYTES_PER_SAMPLE

    # -------------------------------------------------------------------------
    # Event handlers
    # -------------------------------------------------------------------------

    def _item_created(self, event):
        raw = event["item"]
        item_id = raw["id"]
        if item_id in self.item_lookup:
            return self.item_lookup[item_id], None

        item_type = raw.get("type", "message")
        role = raw.get("role") or "tool"
        item = ConversationItem(
            id=item_id,
            type=item_type,
            role=role,
            status=raw.get("status") or ItemStatus.IN_PROGRESS.value,
            content=[dict(part) for part in raw.get("content", [])],
            formatted=FormattedContent(),
        )
        self.item_lookup[item_id] = item
        self.items.append(item)

        # User audio cut out by server VAD arrives before the item does
        speech = self.queued_speech_items.pop(item_id, None)
        if speech and speech.get("audio"):
            item.formatted.audio = bytearray(speech["audio"])

        for part in item.content:
            if part.get("type") in ("text", "input_text"):
                item.formatted.text += part.get("text") or ""

        if item.type == "message":
            if item.role == "user":
                item.status = ItemStatus.COMPLETED.value
                if self.queued_input_audio:
                    item.formatted.audio = bytearray(self.queued_input_audio)
                    self.queued_input_audio = None
                transcript = self.queued_transcript_items.pop(item_id, None)
                if transcript is not None:
                    item.formatted.transcript = transcript
            elif item.role == "system":
                item.status = ItemStatus.COMPLETED.value
        elif item.type == "function_call":
            item.formatted.tool = ToolCall(
                name=raw["name"],
                call_id=raw["call_id"],
                arguments=raw.get("arguments") or "",
            )
            item.status = ItemStatus.IN_PROGRESS.value
        elif item.type == "function_call_output":
            item.status = ItemStatus.COMPLETED.value
            item.formatted.output = raw.get("output")
        return item, None

    def _item_truncated(self, event):
        item = self._require_item(event["item_id"], event["type"])
        audio_end_ms = event["audio_end_ms"]
        end_index = self._ms_to_bytes(audio_end_ms)
        item.formatted.transcript = ""
        del item.formatted.audio[end_index:]
        return item, {"audio_end_ms": audio_end_ms}

    def _item_deleted(self, event):
        item_id = event["item_id"]
        item = self.item_lookup.pop(item_id, None)
        if item is None:
            raise ProtocolError(f"{event['type']}: item '{item_id}' not found", event_type=event["type"])
        self.items.remove(item)
        return item, None

    def _transcription_completed(self, event):
        item_id = event["item_id"]
        content_index = event["content_index"]
        # Empty transcripts become a single space so they still count as received
        transcript = event.get("transcript") or " "
        item = self.item_lookup.get(item_id)
        if item is None:
            self.queued_transcript_items[item_id] = transcript
            return None, None
        if content_index < len(item.content):
            item.content[content_index]["transcript"] = transcript
        item.formatted.transcript = transcript
        return item, {"transcript": transcript}

    def _speech_started(self, event):
        self.queued_speech_items[event["item_id"]] = {"audio_start_ms": event["audio_start_ms"]}
        return None, None

    def _speech_stopped(self, event, input_audio_buffer):
        item_id = event["item_id"]
        speech = self.queued_speech_items.setdefault(item_id, {"audio_start_ms": 0})
        speech["audio_end_ms"] = event["audio_end_ms"]
        if input_audio_buffer:
            start = self._ms_to_bytes(speech["audio_start_ms"])
            end = self._ms_to_bytes(speech["audio_end_ms"])
            speech["audio"] = bytes(input_audio_buffer[start:end])
        return None, None

    def _response_created(self, event):
        response = dict(event["response"])
        if response["id"] not in self.response_lookup:
            response.setdefault("output", [])
            self.response_lookup[response["id"]] = response
            self.responses.append(response)
        return None, None

    def _output_item_added(self, event):
        response = self.response_lookup.get(event["response_id"])
        if response is None:
            raise ProtocolError(
                f"{event['type']}: response '{event['response_id']}' not found",
                event_type=event["type"],
            )
        response["output"].append(event["item"]["id"])
        return None, None

    def _output_item_done(self, event):
        raw = event["item"]
        item = self._require_item(raw["id"], event["type"])
        item.status = raw.get("status") or ItemStatus.COMPLETED.value
        return item, None

    def _content_part_added(self, event):
        item = self._require_item(event["item_id"], event["type"])
        item.content.append(dict(event["part"]))
        return item, None

    def _audio_transcript_delta(self, event):
        item = self._require_item(event["item_id"], event["type"])
        delta = event["delta"]
        content_index = event["content_index"]
        if content_index < len(item.content):
            part = item.content[content_index]
            part["transcript"] = (part.get("transcript") or "") + delta
        item.formatted.transcript += delta
        return item, {"transcript": delta}

    def _audio_delta(self, event):
        item = self._require_item(event["item_id"], event["type"])
        audio = base64.b64decode(event["delta"])
        item.formatted.audio.extend(audio)
        return item, {"audio": audio}

    def _text_delta(self, event):
        item = self._require_item(event["item_id"], event["type"])
        delta = event["delta"]
        content_index = event["content_index"]
        if content_index < len(item.content):
            part = item.content[content_index]
            part["text"] = (part.get("text") or "") + delta
        item.formatted.text += delta
        return item, {"text": delta}

    def _function_call_arguments_delta(self, event):
        item = self._require_item(event["item_id"], event["type"])
        if item.formatted.tool is None:
            raise ProtocolError(
                f"{event['type']}: item '{item.id}' is not a function call",
                event_type=event["type"],
            )
        delta = event["delta"]
        item.formatted.tool.arguments += delta
        return item, {"arguments": delta}

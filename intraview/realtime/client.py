"""Realtime session client: session config, tools and conversation events"""

import asyncio
import base64
import copy
import inspect
import json
import time
from typing import Awaitable, Callable, Optional, Union

import numpy as np

from intraview.config import Config
from intraview.errors import CancellationFailure, ProtocolError
from intraview.realtime.api import RealtimeAPI
from intraview.realtime.conversation import RealtimeConversation
from intraview.realtime.event_handler import EventHandler
from intraview.realtime.items import ConversationItem, ItemStatus

ToolHandler = Callable[[dict], Union[dict, Awaitable[dict]]]

DEFAULT_SESSION_CONFIG = {
    "modalities": ["text", "audio"],
    "instructions": "",
    "voice": Config.REALTIME_VOICE,
    "input_audio_format": "pcm16",
    "output_audio_format": "pcm16",
    "input_audio_transcription": None,
    "turn_detection": None,
    "tools": [],
    "tool_choice": "auto",
    "temperature": 0.8,
    "max_response_output_tokens": 4096,
}

DEFAULT_SERVER_VAD = {
    "type": "server_vad",
    "threshold": 0.5,
    "prefix_padding_ms": 300,
    "silence_duration_ms": 200,
}

# Conversation-level server events and what the client re-emits for them
_UPDATE_EVENTS = (
    "conversation.item.truncated",
    "conversation.item.deleted",
    "conversation.item.input_audio_transcription.completed",
    "response.audio_transcript.delta",
    "response.audio.delta",
    "response.text.delta",
    "response.function_call_arguments.delta",
)


def to_pcm16_bytes(audio) -> bytes:
    """Accept int16/float arrays or raw bytes and return PCM16 LE bytes"""
    if isinstance(audio, (bytes, bytearray, memoryview)):
        return bytes(audio)
    array = np.asarray(audio)
    if array.dtype.kind == "f":
        array = np.clip(array, -1.0, 1.0)
        array = (array * 32767).astype(np.int16)
    elif array.dtype != np.int16:
        array = array.astype(np.int16)
    return array.astype("<i2").tobytes()


class RealtimeClient(EventHandler):
    """
    Remote session client for one realtime conversation.

    Emits:
        realtime.event              every client/server event {time, source, event}
        error                       server error events (and protocol errors)
        close                       websocket closed {error}
        conversation.interrupted    server VAD heard the user start speaking
        conversation.updated        {item, delta} for any item mutation
        conversation.item.appended  {item} when an item first appears
        conversation.item.completed {item} when the server finishes an item
        conversation.item.incomplete {item} when an item ends cut short
        response.done               the server finished a response
    """

    def __init__(self, url: Optional[str] = None, api_key: Optional[str] = None,
                 sample_rate: int = Config.SAMPLE_RATE):
        super().__init__()
        self.sample_rate = sample_rate
        self.logger = Config.LOGGER
        self.session_config = copy.deepcopy(DEFAULT_SESSION_CONFIG)
        self.tools: dict[str, dict] = {}
        self.session_created = False
        self.input_audio_buffer = bytearray()
        self.realtime = RealtimeAPI(url=url, api_key=api_key)
        self.conversation = RealtimeConversation(sample_rate=sample_rate)
        self._tool_tasks: set[asyncio.Task] = set()
        self._add_api_event_handlers()

    # -------------------------------------------------------------------------
    # Wiring
    # -------------------------------------------------------------------------

    def _add_api_event_handlers(self) -> None:
        realtime = self.realtime
        realtime.subscribe("client.*", self._on_client_event)
        realtime.subscribe("server.*", self._on_server_event)
        realtime.subscribe("server.session.created", self._on_session_created)
        realtime.subscribe("server.error", self._on_server_error)
        realtime.subscribe("close", self._on_close)

        realtime.subscribe("server.response.created", self._process_only)
        realtime.subscribe("server.response.output_item.added", self._process_only)
        realtime.subscribe("server.response.content_part.added", self._process_only)
        realtime.subscribe("server.input_audio_buffer.speech_started", self._on_speech_started)
        realtime.subscribe("server.input_audio_buffer.speech_stopped", self._on_speech_stopped)
        realtime.subscribe("server.conversation.item.created", self._on_item_created)
        realtime.subscribe("server.response.output_item.done", self._on_output_item_done)
        realtime.subscribe("server.response.done", self._on_response_done)
        for event_type in _UPDATE_EVENTS:
            realtime.subscribe(f"server.{event_type}", self._on_item_updated)

    async def _on_client_event(self, event):
        await self.dispatch("realtime.event", {"time": time.time(), "source": "client", "event": event})

    async def _on_server_event(self, event):
        await self.dispatch("realtime.event", {"time": time.time(), "source": "server", "event": event})

    def _on_session_created(self, event):
        self.session_created = True

    async def _on_server_error(self, event):
        await self.dispatch("error", event)

    async def _on_close(self, event):
        await self.dispatch("close", event)

    async def _process(self, event, *args):
        """Apply an event to the conversation; protocol errors become "error" events"""
        try:
            return self.conversation.process_event(event, *args)
        except ProtocolError as e:
            if self.logger:
                self.logger.warning(
                    "conversation_protocol_error",
                    extra={"event_type": e.event_type, "error": str(e)}
                )
            await self.dispatch("error", {
                "type": "error",
                "error": {"type": "protocol_error", "message": str(e), "event_type": e.event_type},
            })
            return None, None

    async def _process_only(self, event):
        await self._process(event)

    async def _on_speech_started(self, event):
        await self._process(event)
        await self.dispatch("conversation.interrupted", event)

    async def _on_speech_stopped(self, event):
        await self._process(event, bytes(self.input_audio_buffer))

    async def _on_item_created(self, event):
        item, delta = await self._process(event)
        if item is None:
            return
        await self.dispatch("conversation.item.appended", {"item": item})
        if item.is_completed:
            await self.dispatch("conversation.item.completed", {"item": item})

    async def _on_output_item_done(self, event):
        item, delta = await self._process(event)
        if item is None:
            return
        if item.is_completed:
            await self.dispatch("conversation.item.completed", {"item": item})
        elif item.status == ItemStatus.INCOMPLETE.value:
            await self.dispatch("conversation.item.incomplete", {"item": item})
        if item.formatted.tool:
            self._schedule_tool_call(item)

    async def _on_response_done(self, event):
        await self.dispatch("response.done", event)

    async def _on_item_updated(self, event):
        item, delta = await self._process(event)
        if item is None:
            return
        await self.dispatch("conversation.updated", {"item": item, "delta": delta})

    # -------------------------------------------------------------------------
    # Tools
    # -------------------------------------------------------------------------

    def add_tool(self, definition: dict, handler: ToolHandler) -> dict:
        """
        Register a function tool the agent may call.

        Args:
            definition: {"name", "description", "parameters"} JSON schema
            handler: Callable receiving the parsed arguments dict
        """
        name = definition.get("name")
        if not name:
            raise ValueError("Missing tool name in definition")
        if name in self.tools:
            raise ValueError(f"Tool '{name}' already added. Call remove_tool() first")
        if not callable(handler):
            raise ValueError(f"Tool '{name}' handler must be callable")
        self.tools[name] = {"definition": definition, "handler": handler}
        return self.tools[name]

    def remove_tool(self, name: str) -> None:
        if name not in self.tools:
            raise ValueError(f"Tool '{name}' does not exist, can not be removed")
        del self.tools[name]

    def _schedule_tool_call(self, item: ConversationItem) -> None:
        # Tool handlers may be slow; they must not hold up inbound dispatch
        task = asyncio.create_task(self._call_tool(item))
        self._tool_tasks.add(task)
        task.add_done_callback(self._tool_tasks.discard)

    async def _call_tool(self, item: ConversationItem) -> None:
        tool = item.formatted.tool
        try:
            arguments = json.loads(tool.arguments or "{}")
            tool_config = self.tools.get(tool.name)
            if tool_config is None:
                raise ValueError(f"Tool '{tool.name}' has not been added")
            result = tool_config["handler"](arguments)
            if inspect.isawaitable(result):
                result = await result
            output = json.dumps(result)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self.logger:
                self.logger.warning(
                    "tool_call_failed",
                    extra={"tool_name": tool.name, "error": str(e)}
                )
            output = json.dumps({"error": str(e)})

        if not self.is_connected():
            return
        await self.realtime.send("conversation.item.create", {
            "item": {
                "type": "function_call_output",
                "call_id": tool.call_id,
                "output": output,
            }
        })
        await self.create_response()

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    def is_connected(self) -> bool:
        return self.realtime.is_connected()

    async def connect(self) -> bool:
        """Connect to the realtime API and push the current session config"""
        if self.is_connected():
            raise RuntimeError("Already connected, use disconnect() first")
        await self.realtime.connect()
        await self.update_session()
        return True

    async def wait_for_session_created(self, timeout: Optional[float] = None) -> bool:
        if not self.is_connected():
            raise RuntimeError("Not connected, use connect() first")
        if self.session_created:
            return True
        return await self.realtime.wait_for_next("server.session.created", timeout=timeout) is not None

    async def disconnect(self) -> None:
        """Close the connection and forget conversation state"""
        self.session_created = False
        for task in list(self._tool_tasks):
            if task is not asyncio.current_task():
                task.cancel()
        if self.realtime.is_connected():
            await self.realtime.disconnect()
        self.conversation.clear()
        self.input_audio_buffer = bytearray()

    async def reset(self) -> None:
        """Disconnect, drop all listeners and restore the default session config"""
        await self.disconnect()
        self.clear_event_handlers()
        self.realtime.clear_event_handlers()
        self.session_config = copy.deepcopy(DEFAULT_SESSION_CONFIG)
        self.tools = {}
        self._add_api_event_handlers()

    def get_turn_detection_type(self) -> Optional[str]:
        turn_detection = self.session_config.get("turn_detection")
        return turn_detection.get("type") if turn_detection else None

    def get_items(self) -> list[ConversationItem]:
        return self.conversation.get_items()

    async def update_session(self, **options) -> None:
        """
        Update session options; sends session.update when connected.

        Recognized options include turn_detection (None or {"type": "server_vad"}),
        instructions and input_audio_transcription ({"model": ...}).
        """
        previous_config = copy.deepcopy(self.session_config)
        for key, value in options.items():
            if key not in DEFAULT_SESSION_CONFIG:
                raise ValueError(f"Unknown session option '{key}'")
            if key == "turn_detection" and value is not None and value.get("type") == "server_vad":
                value = {**DEFAULT_SERVER_VAD, **value}
            self.session_config[key] = value

        session = dict(self.session_config)
        session["tools"] = list(self.session_config.get("tools") or []) + [
            {"type": "function", **tool["definition"]} for tool in self.tools.values()
        ]
        if self.is_connected():
            try:
                await self.realtime.send("session.update", {"session": session})
            except Exception:
                self.session_config = previous_config
                raise

    # -------------------------------------------------------------------------
    # Outbound conversation
    # -------------------------------------------------------------------------

    async def send_user_message_content(self, content: list) -> None:
        """Send a user message (input_text / input_audio parts) and request a response"""
        if content:
            parts = []
            for part in content:
                part = dict(part)
                if part.get("type") == "input_audio" and not isinstance(part.get("audio"), str):
                    part["audio"] = base64.b64encode(to_pcm16_bytes(part["audio"])).decode("utf-8")
                parts.append(part)
            await self.realtime.send("conversation.item.create", {
                "item": {"type": "message", "role": "user", "content": parts}
            })
        await self.create_response()

    async def append_input_audio(self, audio) -> None:
        """Stream one captured frame to the server input buffer"""
        pcm = to_pcm16_bytes(audio)
        if not pcm:
            return
        await self.realtime.send("input_audio_buffer.append", {
            "audio": base64.b64encode(pcm).decode("utf-8")
        })
        self.input_audio_buffer.extend(pcm)

    async def create_response(self) -> None:
        """Ask the agent to respond; commits pending input audio in manual mode"""
        if self.get_turn_detection_type() is None and len(self.input_audio_buffer) > 0:
            await self.realtime.send("input_audio_buffer.commit")
            self.conversation.queue_input_audio(self.input_audio_buffer)
            self.input_audio_buffer = bytearray()
        await self.realtime.send("response.create")

    async def cancel_response(self, item_id: Optional[str] = None, audio_end_ms: int = 0):
        """
        Cancel the in-flight response and truncate the assistant item.

        Args:
            item_id: Assistant item being played (the playback track id)
            audio_end_ms: How much of the item's audio was actually heard

        Raises:
            CancellationFailure: the item is unknown or cannot be truncated
        """
        if not item_id:
            await self.realtime.send("response.cancel")
            return None

        item = self.conversation.get_item(item_id)
        if item is None:
            raise CancellationFailure(f"Could not find item '{item_id}'")
        if item.type != "message":
            raise CancellationFailure("Can only cancel response messages with type 'message'")
        if item.role != "assistant":
            raise CancellationFailure("Can only cancel response messages with role 'assistant'")

        await self.realtime.send("response.cancel")
        audio_index = next(
            (i for i, part in enumerate(item.content) if part.get("type") == "audio"),
            -1
        )
        if audio_index == -1:
            raise CancellationFailure("Could not find audio on item to cancel")
        await self.realtime.send("conversation.item.truncate", {
            "item_id": item_id,
            "content_index": audio_index,
            "audio_end_ms": int(audio_end_ms),
        })
        return item

    async def delete_item(self, item_id: str) -> None:
        await self.realtime.send("conversation.item.delete", {"item_id": item_id})

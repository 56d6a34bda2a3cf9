"""
Tests for RealtimeClient.

The websocket transport is replaced by an AsyncMock on RealtimeAPI.send;
server events are injected by dispatching on the transport directly.
"""

import asyncio
import base64
import json
from unittest.mock import AsyncMock

import numpy as np
import pytest

from intraview.errors import CancellationFailure
from intraview.realtime.client import RealtimeClient, to_pcm16_bytes


@pytest.fixture
def rt():
    client = RealtimeClient(url="ws://localhost:8081", api_key="test-key")
    client.realtime.send = AsyncMock(return_value={})
    client.realtime.is_connected = lambda: True
    return client


def sent(rt):
    return [c.args for c in rt.realtime.send.call_args_list]


def sent_types(rt):
    return [c.args[0] for c in rt.realtime.send.call_args_list]


async def server(rt, event):
    await rt.realtime.dispatch(f"server.{event['type']}", event)
    await rt.realtime.dispatch("server.*", event)


async def create_assistant_item(rt, item_id="a1", content=None):
    await server(rt, {
        "type": "conversation.item.created",
        "item": {
            "id": item_id,
            "type": "message",
            "role": "assistant",
            "status": "in_progress",
            "content": content if content is not None else [{"type": "audio", "transcript": ""}],
        },
    })


class TestCancelResponse:

    @pytest.mark.asyncio
    async def test_unknown_item_rejected(self, rt):
        with pytest.raises(CancellationFailure):
            await rt.cancel_response("missing", 100)
        assert sent_types(rt) == []

    @pytest.mark.asyncio
    async def test_cancel_and_truncate(self, rt):
        await create_assistant_item(rt)
        await rt.cancel_response("a1", 500)
        assert sent(rt) == [
            ("response.cancel",),
            ("conversation.item.truncate", {"item_id": "a1", "content_index": 0, "audio_end_ms": 500}),
        ]

    @pytest.mark.asyncio
    async def test_user_item_rejected(self, rt):
        await server(rt, {
            "type": "conversation.item.created",
            "item": {"id": "u1", "type": "message", "role": "user", "content": []},
        })
        with pytest.raises(CancellationFailure):
            await rt.cancel_response("u1", 10)

    @pytest.mark.asyncio
    async def test_item_without_audio_rejected(self, rt):
        await create_assistant_item(rt, content=[{"type": "text", "text": ""}])
        with pytest.raises(CancellationFailure):
            await rt.cancel_response("a1", 10)

    @pytest.mark.asyncio
    async def test_without_item_only_cancels(self, rt):
        await rt.cancel_response()
        assert sent(rt) == [("response.cancel",)]


class TestSessionConfig:

    @pytest.mark.asyncio
    async def test_unknown_option_rejected(self, rt):
        with pytest.raises(ValueError):
            await rt.update_session(colour="blue")

    @pytest.mark.asyncio
    async def test_server_vad_gets_defaults(self, rt):
        await rt.update_session(turn_detection={"type": "server_vad"})
        assert rt.get_turn_detection_type() == "server_vad"
        assert rt.session_config["turn_detection"]["silence_duration_ms"] == 200

    @pytest.mark.asyncio
    async def test_session_update_includes_tools(self, rt):
        rt.add_tool({"name": "set_memory", "parameters": {}}, lambda args: {"ok": True})
        await rt.update_session(instructions="Be brief")
        event_name, body = sent(rt)[-1]
        assert event_name == "session.update"
        assert body["session"]["instructions"] == "Be brief"
        assert body["session"]["tools"] == [{"type": "function", "name": "set_memory", "parameters": {}}]

    @pytest.mark.asyncio
    async def test_failed_update_keeps_previous_config(self, rt):
        rt.realtime.send.side_effect = asyncio.TimeoutError()
        with pytest.raises(asyncio.TimeoutError):
            await rt.update_session(turn_detection={"type": "server_vad"})
        assert rt.get_turn_detection_type() is None

    def test_duplicate_tool_rejected(self, rt):
        rt.add_tool({"name": "set_memory"}, lambda args: {})
        with pytest.raises(ValueError):
            rt.add_tool({"name": "set_memory"}, lambda args: {})


class TestOutbound:

    @pytest.mark.asyncio
    async def test_manual_response_commits_input_audio(self, rt):
        await rt.append_input_audio(np.zeros(2400, dtype=np.int16))
        await rt.create_response()
        assert sent_types(rt) == ["input_audio_buffer.append", "input_audio_buffer.commit", "response.create"]
        assert len(rt.input_audio_buffer) == 0

    @pytest.mark.asyncio
    async def test_response_without_audio_does_not_commit(self, rt):
        await rt.create_response()
        assert sent_types(rt) == ["response.create"]

    @pytest.mark.asyncio
    async def test_user_message_then_response(self, rt):
        await rt.send_user_message_content([{"type": "input_text", "text": "hello"}])
        assert sent_types(rt) == ["conversation.item.create", "response.create"]
        assert sent(rt)[0][1]["item"]["content"] == [{"type": "input_text", "text": "hello"}]

    def test_pcm16_conversion(self):
        assert to_pcm16_bytes(np.array([1, -1], dtype=np.int16)) == b"\x01\x00\xff\xff"
        assert to_pcm16_bytes(np.array([1.0], dtype=np.float32)) == (32767).to_bytes(2, "little", signed=True)
        assert to_pcm16_bytes(b"\x00\x01") == b"\x00\x01"


class TestInboundEvents:

    @pytest.mark.asyncio
    async def test_audio_delta_emits_conversation_updated(self, rt):
        updates = []
        rt.subscribe("conversation.updated", updates.append)
        await create_assistant_item(rt)
        await server(rt, {
            "type": "response.audio.delta",
            "item_id": "a1",
            "content_index": 0,
            "delta": base64.b64encode(b"\x01\x02\x03\x04").decode(),
        })
        assert len(updates) == 1
        assert updates[0]["delta"] == {"audio": b"\x01\x02\x03\x04"}
        assert updates[0]["item"].id == "a1"

    @pytest.mark.asyncio
    async def test_unknown_item_becomes_protocol_error(self, rt):
        errors = []
        rt.subscribe("error", errors.append)
        await server(rt, {"type": "response.audio.delta", "item_id": "ghost", "content_index": 0, "delta": ""})
        assert errors[0]["error"]["type"] == "protocol_error"

    @pytest.mark.asyncio
    async def test_speech_started_emits_interrupted(self, rt):
        interrupted = []
        rt.subscribe("conversation.interrupted", interrupted.append)
        await server(rt, {"type": "input_audio_buffer.speech_started", "item_id": "u2", "audio_start_ms": 0})
        assert len(interrupted) == 1

    @pytest.mark.asyncio
    async def test_every_event_is_reemitted(self, rt):
        events = []
        rt.subscribe("realtime.event", events.append)
        await server(rt, {"type": "session.created", "session": {}})
        assert events[0]["source"] == "server"
        assert events[0]["event"]["type"] == "session.created"
        assert rt.session_created

    @pytest.mark.asyncio
    async def test_tool_call_round_trip(self, rt):
        calls = []

        def set_memory(args):
            calls.append(args)
            return {"ok": True}

        rt.add_tool({"name": "set_memory"}, set_memory)
        await server(rt, {
            "type": "conversation.item.created",
            "item": {"id": "f1", "type": "function_call", "name": "set_memory", "call_id": "call_1", "arguments": ""},
        })
        await server(rt, {
            "type": "response.function_call_arguments.delta",
            "item_id": "f1",
            "delta": json.dumps({"key": "name", "value": "Ada"}),
        })
        await server(rt, {"type": "response.output_item.done", "item": {"id": "f1", "status": "completed"}})
        await asyncio.gather(*list(rt._tool_tasks))

        assert calls == [{"key": "name", "value": "Ada"}]
        assert sent(rt)[0] == ("conversation.item.create", {
            "item": {"type": "function_call_output", "call_id": "call_1", "output": json.dumps({"ok": True})}
        })
        assert sent_types(rt)[-1] == "response.create"

    @pytest.mark.asyncio
    async def test_response_done_reemitted(self, rt):
        done = []
        rt.subscribe("response.done", done.append)
        await server(rt, {"type": "response.done", "response": {"id": "r1", "status": "completed"}})
        assert [e["response"]["id"] for e in done] == ["r1"]

    @pytest.mark.asyncio
    async def test_cancelled_item_emits_incomplete(self, rt):
        completed, incomplete = [], []
        rt.subscribe("conversation.item.completed", completed.append)
        rt.subscribe("conversation.item.incomplete", incomplete.append)
        await create_assistant_item(rt)
        await server(rt, {"type": "response.output_item.done", "item": {"id": "a1", "status": "incomplete"}})
        assert completed == []
        assert incomplete[0]["item"].id == "a1"

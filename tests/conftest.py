"""
Shared fakes for session tests.

The recorder, player and remote client stand-ins keep the real
collaborators' method names and append every call to a shared `calls`
list, so tests can assert on cross-component ordering.
"""

import inspect

import pytest

from intraview.audio.playback import TrackSampleOffset
from intraview.errors import CancellationFailure
from intraview.realtime.event_handler import EventHandler
from intraview.realtime.items import ConversationItem, ItemStatus


class FakeRecorder:
    def __init__(self, calls):
        self.calls = calls
        self.status = "idle"
        self.on_frame = None
        self.fail_begin = None

    @property
    def recording(self):
        return self.status == "recording"

    def get_status(self):
        return self.status

    async def begin(self):
        self.calls.append(("recorder.begin",))
        if self.fail_begin:
            raise self.fail_begin
        self.status = "paused"

    async def record(self, on_frame):
        self.calls.append(("recorder.record",))
        self.on_frame = on_frame
        self.status = "recording"

    async def pause(self):
        self.calls.append(("recorder.pause",))
        self.on_frame = None
        self.status = "paused"

    async def end(self):
        self.calls.append(("recorder.end",))
        self.on_frame = None
        self.status = "idle"

    async def emit(self, frame):
        """Deliver one captured frame the way the pump task would"""
        if self.on_frame is not None:
            result = self.on_frame(frame)
            if inspect.isawaitable(result):
                await result


class FakePlayer:
    def __init__(self, calls):
        self.calls = calls
        self.connected = False
        self.chunks = []
        self.active = None  # TrackSampleOffset to hand out on the next interrupt
        self.fail_connect = None

    async def connect(self):
        self.calls.append(("player.connect",))
        if self.fail_connect:
            raise self.fail_connect
        self.connected = True

    async def close(self):
        self.calls.append(("player.close",))
        self.connected = False

    def add_16bit_pcm(self, data, track_id="default"):
        self.calls.append(("player.add_16bit_pcm", track_id, len(data)))
        self.chunks.append((track_id, bytes(data)))
        return True

    async def interrupt(self):
        self.calls.append(("player.interrupt",))
        offset, self.active = self.active, None
        return offset


class FakeRealtimeClient(EventHandler):
    def __init__(self, calls):
        super().__init__()
        self.calls = calls
        self.connected = False
        self.items = []
        self.tools = {}
        self.session_options = {}
        self.fail_connect = None
        self.cancel_error = None
        self.update_error = None
        self.disconnect_error = None

    def add_tool(self, definition, handler):
        self.tools[definition["name"]] = handler

    def is_connected(self):
        return self.connected

    def get_items(self):
        return list(self.items)

    def get_turn_detection_type(self):
        turn_detection = self.session_options.get("turn_detection")
        return turn_detection.get("type") if turn_detection else None

    async def update_session(self, **options):
        self.calls.append(("client.update_session", options))
        if self.update_error:
            raise self.update_error
        self.session_options.update(options)

    async def connect(self):
        self.calls.append(("client.connect",))
        if self.fail_connect:
            raise self.fail_connect
        self.connected = True
        return True

    async def disconnect(self):
        self.calls.append(("client.disconnect",))
        self.connected = False
        if self.disconnect_error:
            raise self.disconnect_error

    async def send_user_message_content(self, content):
        self.calls.append(("client.send_user_message_content", content))

    async def append_input_audio(self, audio):
        self.calls.append(("client.append_input_audio", len(audio)))

    async def create_response(self):
        self.calls.append(("client.create_response",))

    async def cancel_response(self, item_id=None, audio_end_ms=0):
        self.calls.append(("client.cancel_response", item_id, audio_end_ms))
        if self.cancel_error:
            raise self.cancel_error

    async def delete_item(self, item_id):
        self.calls.append(("client.delete_item", item_id))

    # Helpers for driving inbound notifications

    def add_item(self, item_id, role="assistant", status=ItemStatus.IN_PROGRESS.value):
        item = ConversationItem(id=item_id, role=role, status=status)
        self.items.append(item)
        return item

    async def audio_delta(self, item, audio: bytes):
        item.formatted.audio.extend(audio)
        await self.dispatch("conversation.updated", {"item": item, "delta": {"audio": audio}})

    async def complete(self, item):
        item.status = ItemStatus.COMPLETED.value
        await self.dispatch("conversation.item.completed", {"item": item})


@pytest.fixture
def calls():
    return []


@pytest.fixture
def recorder(calls):
    return FakeRecorder(calls)


@pytest.fixture
def player(calls):
    return FakePlayer(calls)


@pytest.fixture
def client(calls):
    return FakeRealtimeClient(calls)


@pytest.fixture
def cancellation_failure():
    return CancellationFailure("Could not find item 'gone'")


@pytest.fixture
def track():
    return TrackSampleOffset("a1", 12000)

"""
Session Controller - lifecycle of one interview session.

Owns the remote client, microphone and speaker, and wires them to the
turn-taking controller, interruption coordinator, conversation reconciler
and event log. All listeners registered for a session are tracked and
dropped on disconnect, so repeated connect/disconnect cycles never stack
handlers.

Usage:
    controller = SessionController()
    await controller.connect(InterviewConfig(custom_question="Two Sum"))
    await controller.start_recording()
    await controller.stop_recording()
    await controller.disconnect()
"""

import inspect
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from intraview.audio.capture import AudioRecorder
from intraview.audio.playback import StreamPlayer
from intraview.config import Config
from intraview.errors import SessionConnectionError, SessionError
from intraview.realtime.client import RealtimeClient
from intraview.session.editor import EditorBuffer
from intraview.session.event_log import EventLogAggregator
from intraview.session.instructions import (
    FEEDBACK_PROMPT,
    INSTRUCTIONS,
    SET_MEMORY_TOOL,
    InterviewConfig,
    build_seed_instruction,
)
from intraview.session.interruption import InterruptionCoordinator
from intraview.session.reconciler import ConversationReconciler
from intraview.session.turn_taking import TurnMode, TurnTakingController
from intraview.telemetry import add_span_event, record_exception

FeedbackCallback = Callable[[str], Union[None, Awaitable[None]]]


class SessionStatus(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class Session:
    status: SessionStatus = SessionStatus.DISCONNECTED
    start_time: float = field(default_factory=time.time)
    turn_mode: TurnMode = TurnMode.MANUAL


class SessionController:
    """Operator-facing controller for a realtime interview session"""

    def __init__(self, client=None, recorder=None, player=None,
                 on_feedback: Optional[FeedbackCallback] = None, metrics: Optional[dict] = None):
        """
        Args:
            client: RealtimeClient (default: one built from Config)
            recorder: AudioRecorder (default: default input device)
            player: StreamPlayer (default: default output device)
            on_feedback: Receives the agent's feedback transcript
            metrics: Instruments from intraview.telemetry.create_client_metrics()
        """
        self.client = client or RealtimeClient()
        self.recorder = recorder or AudioRecorder()
        self.player = player or StreamPlayer()
        self.on_feedback = on_feedback
        self.metrics = metrics or {}
        self.logger = Config.LOGGER

        self.session = Session(turn_mode=TurnMode.parse(Config.TURN_MODE))
        self.config: Optional[InterviewConfig] = None
        self._event_log = EventLogAggregator()
        self._memory: dict[str, str] = {}
        self.editor = EditorBuffer()
        self.last_feedback_transcript: Optional[str] = None
        self._feedback_pending = False
        self._subscriptions = []

        self.coordinator = InterruptionCoordinator(
            self.player, self.client, event_log=self._event_log, metrics=self.metrics
        )
        self.turns = TurnTakingController(
            self.recorder, self.client, self.coordinator, mode=self.session.turn_mode
        )
        self.reconciler = ConversationReconciler(
            self.client, self.player, event_log=self._event_log, metrics=self.metrics
        )

        self.client.add_tool(SET_MEMORY_TOOL, self._set_memory)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def is_connected(self) -> bool:
        return self.session.status is SessionStatus.CONNECTED

    @property
    def items(self):
        return list(self.reconciler.items)

    @property
    def event_log(self) -> EventLogAggregator:
        return self._event_log

    @property
    def memory(self) -> dict[str, str]:
        return dict(self._memory)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, config: Optional[InterviewConfig] = None) -> None:
        """
        Open capture, playback and the remote session, then seed the interview.

        Raises:
            SessionError: a session is already connected or connecting
            SessionConnectionError: a sub-resource failed to open (all opened
                resources are closed again before this is raised)
        """
        if self.session.status is not SessionStatus.DISCONNECTED:
            raise SessionError(f"Cannot connect while {self.session.status.value}")

        config = config or InterviewConfig()
        self.config = config
        self.session = Session(status=SessionStatus.CONNECTING, turn_mode=self.turns.mode)
        self._event_log.reset(self.session.start_time)
        self._memory.clear()
        self.editor = EditorBuffer(language=config.programming_language)
        self.reconciler.reset()
        self.turns.reset()
        self._feedback_pending = False
        self._subscribe_session_listeners()

        await self.client.update_session(
            instructions=INSTRUCTIONS,
            input_audio_transcription={"model": Config.TRANSCRIPTION_MODEL},
            turn_detection={"type": "server_vad"} if self.turns.mode is TurnMode.SERVER_VAD else None,
        )

        opened = []
        try:
            await self.recorder.begin()
            opened.append(self.recorder.end)
            await self.player.connect()
            opened.append(self.player.close)
            await self.client.connect()
            opened.append(self.client.disconnect)
            await self.client.send_user_message_content([
                {"type": "input_text", "text": build_seed_instruction(config)}
            ])
        except Exception as e:
            print(f"✗ Connect failed: {e}")
            record_exception(e)
            for close in reversed(opened):
                try:
                    await close()
                except Exception as close_error:
                    if self.logger:
                        self.logger.warning(
                            "connect_unwind_error",
                            extra={"error": str(close_error), "error_type": type(close_error).__name__}
                        )
            self._unsubscribe_session_listeners()
            self.session.status = SessionStatus.DISCONNECTED
            if self.logger:
                self.logger.error(
                    "session_connect_failed",
                    extra={"error": str(e), "error_type": type(e).__name__},
                    exc_info=True
                )
            raise SessionConnectionError(f"Failed to open session: {e}") from e

        self.session.status = SessionStatus.CONNECTED
        print(f"✓ Session connected (turn mode: {self.turns.mode.value})")
        add_span_event("session_connected", turn_mode=self.turns.mode.value, persona=config.persona)
        if self.metrics.get("sessions_started"):
            self.metrics["sessions_started"].add(1, {"turn_mode": self.turns.mode.value})
        if self.logger:
            self.logger.info(
                "session_connected",
                extra={
                    "turn_mode": self.turns.mode.value,
                    "persona": config.persona,
                    "company": config.company,
                    "programming_language": config.programming_language,
                }
            )

        if self.turns.mode is TurnMode.SERVER_VAD:
            await self.turns.begin_continuous()

    async def disconnect(self) -> None:
        """Close the session; items and event log are kept for review"""
        if self.session.status is not SessionStatus.CONNECTED:
            return
        self.session.status = SessionStatus.DISCONNECTED
        self._unsubscribe_session_listeners()
        self._feedback_pending = False

        for close in (self.client.disconnect, self.recorder.end, self.player.interrupt):
            try:
                await close()
            except Exception as e:
                record_exception(e)
                if self.logger:
                    self.logger.warning(
                        "disconnect_teardown_error",
                        extra={"error": str(e), "error_type": type(e).__name__}
                    )
        self.turns.reset()

        duration = time.time() - self.session.start_time
        print(f"👋 Session disconnected ({duration:.1f}s)")
        add_span_event("session_disconnected", duration_s=round(duration, 2))
        if self.metrics.get("session_duration"):
            self.metrics["session_duration"].record(duration)
        if self.logger:
            self.logger.info(
                "session_disconnected",
                extra={"duration_s": round(duration, 2), "items": len(self.reconciler.items)}
            )

    async def reset(self) -> None:
        """Disconnect and forget items, event log, memory and the editor mirror"""
        await self.disconnect()
        self.reconciler.reset()
        self._event_log.reset()
        self._memory.clear()
        self.editor = EditorBuffer(language=self.editor.language)
        self.last_feedback_transcript = None

    # -------------------------------------------------------------------------
    # Operator actions
    # -------------------------------------------------------------------------

    async def delete_item(self, item_id: str) -> None:
        """Ask the server to delete an item (ignored when disconnected)"""
        if not self.is_connected:
            return
        await self.client.delete_item(item_id)

    async def start_recording(self) -> None:
        self._require_connected("start_recording")
        await self.turns.start_recording()

    async def stop_recording(self) -> None:
        self._require_connected("stop_recording")
        await self.turns.stop_recording()

    async def change_turn_mode(self, mode) -> None:
        await self.turns.change_mode(mode, connected=self.is_connected)
        self.session.turn_mode = self.turns.mode

    def update_code(self, text: str) -> None:
        self.editor.update(text)

    async def send_code(self) -> bool:
        """Share the editor buffer with the interviewer; False when not sent"""
        if not self.is_connected:
            return False
        await self.client.send_user_message_content([
            {"type": "input_text", "text": self.editor.as_message()}
        ])
        self.editor.mark_sent()
        if self.logger:
            self.logger.info(
                "code_sent",
                extra={"language": self.editor.language, "chars": len(self.editor.code)}
            )
        return True

    async def request_feedback(self) -> None:
        """Ask for scored feedback; the next assistant transcript goes to on_feedback"""
        self._require_connected("request_feedback")
        self._feedback_pending = True
        await self.client.send_user_message_content([
            {"type": "input_text", "text": FEEDBACK_PROMPT}
        ])

    def _require_connected(self, action: str) -> None:
        if not self.is_connected:
            raise SessionError(f"{action} requires a connected session")

    # -------------------------------------------------------------------------
    # Session listeners
    # -------------------------------------------------------------------------

    def _subscribe_session_listeners(self) -> None:
        self._unsubscribe_session_listeners()
        client = self.client
        self._subscriptions = [
            client.subscribe("realtime.event", self._on_realtime_event),
            client.subscribe("error", self._on_error),
            client.subscribe("close", self._on_close),
            client.subscribe("conversation.interrupted", self.coordinator.on_conversation_interrupted),
            client.subscribe("conversation.updated", self.reconciler.on_conversation_updated),
            client.subscribe("conversation.item.completed", self.reconciler.on_item_completed),
            client.subscribe("conversation.item.completed", self._on_feedback_item),
            client.subscribe("conversation.item.incomplete", self.reconciler.on_item_incomplete),
            client.subscribe("response.done", self.turns.on_response_done),
        ]

    def _unsubscribe_session_listeners(self) -> None:
        for subscription in self._subscriptions:
            self.client.unsubscribe(subscription)
        self._subscriptions = []

    def _on_realtime_event(self, event: dict) -> None:
        self._event_log.record(event["source"], event["event"], timestamp=event.get("time"))

    def _on_error(self, event: dict) -> None:
        error = event.get("error") or {}
        if error.get("type") == "protocol_error":
            self._event_log.record("client", {"type": "error.protocol", "error": error})
        print(f"⚠️  Realtime error: {error.get('message', error)}")
        if self.logger:
            self.logger.warning(
                "realtime_error",
                extra={"error_type": error.get("type"), "message": error.get("message")}
            )

    async def _on_close(self, event: dict) -> None:
        if not self.is_connected:
            return
        print("🔌 Realtime connection closed by server")
        if self.logger:
            self.logger.warning("realtime_connection_closed", extra={"error": bool(event.get("error"))})
        await self.disconnect()

    async def _on_feedback_item(self, event: dict) -> None:
        item = event.get("item")
        if not self._feedback_pending or item is None or item.role != "assistant":
            return
        self._feedback_pending = False
        transcript = item.formatted.transcript or item.formatted.text
        self.last_feedback_transcript = transcript
        if self.on_feedback is not None:
            result = self.on_feedback(transcript)
            if inspect.isawaitable(result):
                await result

    def _set_memory(self, arguments: dict) -> dict:
        key = arguments["key"]
        value = arguments["value"]
        self._memory[key] = value
        print(f"🧠 Memory: {key} = {value}")
        if self.logger:
            self.logger.info("memory_set", extra={"key": key})
        return {"ok": True}

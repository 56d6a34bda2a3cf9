"""
Turn-Taking Controller - push-to-talk and server VAD capture.

Manual mode:
    IDLE --start_recording()--> CAPTURING --stop_recording()--> AWAITING_RESPONSE
    AWAITING_RESPONSE --response.done--> IDLE

Server VAD mode keeps capture running for the whole session; the server
decides turn boundaries and only interruptions need handling here.
"""

from enum import Enum

from intraview.config import Config
from intraview.errors import SessionError


class TurnState(Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    AWAITING_RESPONSE = "awaiting_response"


class TurnMode(str, Enum):
    MANUAL = "none"
    SERVER_VAD = "server_vad"

    @classmethod
    def parse(cls, value) -> "TurnMode":
        if isinstance(value, cls):
            return value
        if value in (None, "manual"):
            return cls.MANUAL
        return cls(value)


class TurnTakingController:
    """Owns the recorder: the only component that starts or pauses capture"""

    def __init__(self, recorder, client, coordinator, mode=TurnMode.MANUAL):
        self.recorder = recorder
        self.client = client
        self.coordinator = coordinator
        self.mode = TurnMode.parse(mode)
        self.state = TurnState.IDLE
        self.logger = Config.LOGGER

    def _set_state(self, state: TurnState) -> None:
        if state is self.state:
            return
        if Config.SHOW_TURN_LOGS:
            print(f"🔁 Turn: {self.state.value} → {state.value}")
        if self.logger:
            self.logger.info(
                "turn_state_changed",
                extra={"from_state": self.state.value, "to_state": state.value, "mode": self.mode.value}
            )
        self.state = state

    async def _forward_frame(self, frame) -> None:
        await self.client.append_input_audio(frame)

    async def start_recording(self) -> None:
        """Push-to-talk pressed: silence the agent, then capture"""
        if self.mode is not TurnMode.MANUAL:
            raise SessionError("start_recording is only available in manual turn mode")
        if self.state is TurnState.CAPTURING:
            return
        await self.coordinator.interrupt()
        await self.recorder.record(self._forward_frame)
        self._set_state(TurnState.CAPTURING)

    async def stop_recording(self) -> None:
        """Push-to-talk released: stop capture and ask for a response"""
        if self.mode is not TurnMode.MANUAL:
            raise SessionError("stop_recording is only available in manual turn mode")
        if self.state is not TurnState.CAPTURING:
            return
        await self.recorder.pause()
        await self.client.create_response()
        self._set_state(TurnState.AWAITING_RESPONSE)

    async def begin_continuous(self) -> None:
        """Start always-on capture for server VAD"""
        if self.recorder.recording:
            return
        await self.recorder.record(self._forward_frame)
        self._set_state(TurnState.CAPTURING)

    def on_response_done(self, event) -> None:
        if self.mode is TurnMode.MANUAL and self.state is TurnState.AWAITING_RESPONSE:
            self._set_state(TurnState.IDLE)

    async def change_mode(self, mode, connected: bool) -> None:
        """
        Switch between manual and server VAD without touching conversation items.

        Args:
            mode: TurnMode (or "none"/"manual"/"server_vad")
            connected: Whether a session is live (capture can only run then)
        """
        mode = TurnMode.parse(mode)
        paused = mode is TurnMode.MANUAL and self.recorder.recording
        if paused:
            await self.recorder.pause()
        try:
            if mode is TurnMode.MANUAL:
                await self.client.update_session(turn_detection=None)
            else:
                await self.client.update_session(turn_detection={"type": "server_vad"})
        except Exception as e:
            # Server still runs the old mode: keep capturing for it
            if paused:
                await self.recorder.record(self._forward_frame)
            if self.logger:
                self.logger.error(
                    "turn_mode_change_failed",
                    extra={"from_mode": self.mode.value, "to_mode": mode.value, "error": str(e)}
                )
            raise

        previous = self.mode
        self.mode = mode
        if mode is TurnMode.SERVER_VAD and connected:
            await self.begin_continuous()
        elif mode is TurnMode.MANUAL:
            self._set_state(TurnState.IDLE)

        print(f"🎚️  Turn mode: {previous.value} → {mode.value}")
        if self.logger:
            self.logger.info(
                "turn_mode_changed",
                extra={"from_mode": previous.value, "to_mode": mode.value, "connected": connected}
            )

    def reset(self) -> None:
        self.state = TurnState.IDLE

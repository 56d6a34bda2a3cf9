#!/usr/bin/env python3
"""
Intraview Console
=================
Voice-driven mock coding interview against the OpenAI Realtime API.

Features:
- Push-to-talk or server VAD turn-taking
- Agent playback that is cut off (and truncated server-side) when you talk
- Editor mirror: share your solution file with the interviewer
- Scored feedback on request
- OpenTelemetry observability (traces, metrics, logs)

Usage:
    python main.py --question "Reverse a linked list" --company Acme --vad

Commands (type then Enter):
    t            start/stop talking (push-to-talk mode)
    m            toggle turn mode (push-to-talk / server VAD)
    c <file>     load <file> into the editor mirror and send it
    f            request feedback
    d <item_id>  delete a conversation item
    i            show conversation items
    l            show event log
    q            quit

Requirements:
    - A microphone and speaker reachable through PortAudio
    - OPENAI_API_KEY (or LOCAL_RELAY_SERVER_URL): see Config class
"""

import argparse
import asyncio
import logging
import signal
import socket
import sys

# Configure logging BEFORE any other imports (critical for telemetry)
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    force=True,
)

from intraview.config import Config
from intraview.errors import SessionConnectionError, SessionError
from intraview.session import InterviewConfig, SessionController, TurnMode
from intraview.session.instructions import PERSONAS, PROGRAMMING_LANGUAGES
from intraview.telemetry import (
    add_span_event,
    create_client_metrics,
    create_session_trace,
    get_logger,
    setup_telemetry,
    shutdown_telemetry,
)


# =============================================================================
# MAIN APPLICATION
# =============================================================================

class InterviewConsole:
    """Terminal front end for one SessionController"""

    def __init__(self, interview: InterviewConfig):
        self.interview = interview
        self.client_id = socket.gethostname()
        self.running = True
        self.talking = False
        self.providers = (None, None, None)
        self.metrics = {}

        if Config.OTEL_ENABLED:
            try:
                self.providers = setup_telemetry(self.client_id, Config.OTEL_EXPORTER_ENDPOINT)
                self.metrics = create_client_metrics()
                Config.LOGGER = get_logger(__name__, client_id=self.client_id)
                print("✓ OpenTelemetry initialized")
            except Exception as e:
                print(f"⚠️  Failed to initialize telemetry: {e}")
                Config.LOGGER = logging.getLogger(__name__)
        else:
            Config.LOGGER = logging.getLogger(__name__)
        self.logger = Config.LOGGER

        # Components read Config.LOGGER when built
        self.controller = SessionController(on_feedback=self._print_feedback, metrics=self.metrics)
        self.controller.client.subscribe("conversation.item.completed", self._print_completed_item)

    async def run(self):
        """Connect, then process operator commands until quit"""
        print("\n" + "=" * 60)
        print("🎙️  Intraview Console")
        print("=" * 60)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_interrupt_signal, sig)

        with create_session_trace("interview", persona=self.interview.persona, company=self.interview.company):
            try:
                await self.controller.connect(self.interview)
            except SessionConnectionError as e:
                print(f"✗ Could not start the interview: {e}")
                await self.cleanup()
                return

            self._print_help()
            try:
                while self.running:
                    line = await loop.run_in_executor(None, sys.stdin.readline)
                    if not line:
                        break
                    await self._handle_command(line.strip())
                    if not self.controller.is_connected:
                        print("Session ended")
                        break
            finally:
                await self.cleanup()

    def _handle_interrupt_signal(self, sig):
        print(f"\n🛑 Received {signal.Signals(sig).name} - shutting down (press Enter)...")
        self.running = False
        if self.logger:
            self.logger.info("interrupt_signal_received", extra={"signal": signal.Signals(sig).name})
        asyncio.get_running_loop().create_task(self.controller.disconnect())

    async def _handle_command(self, line: str):
        if not line:
            return
        command, _, argument = line.partition(" ")
        argument = argument.strip()
        try:
            if command == "t":
                await self._toggle_talk()
            elif command == "m":
                await self._toggle_mode()
            elif command == "c":
                await self._send_code(argument)
            elif command == "f":
                print("📝 Requesting feedback...")
                await self.controller.request_feedback()
            elif command == "d":
                await self.controller.delete_item(argument)
            elif command == "i":
                self._print_items()
            elif command == "l":
                print("\n".join(self.controller.event_log.render()) or "(no events)")
            elif command == "q":
                self.running = False
            else:
                self._print_help()
        except SessionError as e:
            print(f"⚠️  {e}")

    async def _toggle_talk(self):
        if self.controller.turns.mode is not TurnMode.MANUAL:
            print("⚠️  Server VAD is on: just talk (press m for push-to-talk)")
            return
        if not self.talking:
            await self.controller.start_recording()
            self.talking = True
            print("🎤 Recording... press t + Enter to send")
        else:
            await self.controller.stop_recording()
            self.talking = False
            print("📤 Sent, waiting for the interviewer")

    async def _toggle_mode(self):
        if self.controller.turns.mode is TurnMode.MANUAL:
            await self.controller.change_turn_mode(TurnMode.SERVER_VAD)
        else:
            await self.controller.change_turn_mode(TurnMode.MANUAL)
        self.talking = False

    async def _send_code(self, path: str):
        if not path:
            print("Usage: c <file>")
            return
        try:
            with open(path, "r", encoding="utf-8") as f:
                self.controller.update_code(f.read())
        except OSError as e:
            print(f"✗ Could not read {path}: {e}")
            return
        if self.controller.editor.is_synced:
            print("✓ Code unchanged since last send")
            return
        if await self.controller.send_code():
            print(f"📎 Sent {path} to the interviewer")

    def _print_completed_item(self, event):
        item = event["item"]
        text = item.display_text
        if item.role in ("user", "assistant") and text:
            label = "You" if item.role == "user" else "Interviewer"
            print(f"\n💬 {label}: {text}")

    def _print_feedback(self, transcript):
        print("\n" + "=" * 60)
        print("📊 Feedback")
        print(transcript or "(no transcript)")
        print("=" * 60)
        add_span_event("feedback_received", chars=len(transcript or ""))

    def _print_items(self):
        if not self.controller.items:
            print("(no items)")
        for item in self.controller.items:
            audio = " 🔈" if item.formatted.file else ""
            print(f"  {item.id} [{item.role}/{item.status}] {item.display_text}{audio}")

    def _print_help(self):
        mode = self.controller.turns.mode
        print(f"\nTurn mode: {'push-to-talk' if mode is TurnMode.MANUAL else 'server VAD'}")
        print("Commands: t talk | m mode | c <file> code | f feedback | d <id> delete | i items | l log | q quit")

    async def cleanup(self):
        """Cleanup resources"""
        print("\n🧹 Cleaning up...")
        self.running = False
        await self.controller.disconnect()
        await self.controller.player.close()
        shutdown_telemetry(self.providers)
        print("✓ Cleanup complete")
        print("👋 Goodbye!\n")


# =============================================================================
# ENTRY POINT
# =============================================================================

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Voice-driven mock coding interview")
    parser.add_argument("--persona", choices=PERSONAS, default="Friendly")
    parser.add_argument("--company", default="", help="Company the candidate is interviewing for")
    parser.add_argument("--question", default="", help="Coding problem to ask")
    parser.add_argument("--language", choices=PROGRAMMING_LANGUAGES, default="python")
    parser.add_argument("--vad", action="store_true", help="Start in server VAD mode instead of push-to-talk")
    return parser.parse_args(argv)


def main():
    """Application entry point"""
    args = parse_args()
    Config.validate()
    if args.vad:
        Config.TURN_MODE = TurnMode.SERVER_VAD.value

    interview = InterviewConfig(
        persona=args.persona,
        company=args.company,
        custom_question=args.question,
        programming_language=args.language,
    )
    console = InterviewConsole(interview)
    asyncio.run(console.run())


if __name__ == "__main__":
    main()

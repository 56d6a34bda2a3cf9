"""Realtime API websocket transport with telemetry"""

import asyncio
import json
import ssl
import time
import uuid
from typing import Optional

import certifi
import websockets

from intraview.config import Config
from intraview.realtime.event_handler import EventHandler


def generate_event_id() -> str:
    return f"evt_{uuid.uuid4().hex[:21]}"


class RealtimeAPI(EventHandler):
    """
    Thin websocket peer for the realtime API.

    Outbound events are dispatched as "client.<type>" and "client.*";
    inbound events as "server.<type>" and "server.*". A "close" event is
    dispatched when the receive loop ends.
    """

    def __init__(self, url: Optional[str] = None, api_key: Optional[str] = None):
        super().__init__()
        self.url = url or Config.realtime_url()
        self.api_key = api_key if api_key is not None else Config.OPENAI_API_KEY
        self.websocket = None
        self.logger = Config.LOGGER
        self._receive_task: Optional[asyncio.Task] = None
        self.connected_at: Optional[float] = None

    def is_connected(self) -> bool:
        return self.websocket is not None

    async def connect(self) -> None:
        """Open the websocket and start the receive loop"""
        logger = self.logger
        if self.is_connected():
            raise RuntimeError("Already connected")

        print(f"\n🔌 Connecting to realtime API...")
        print(f"   URL: {self.url}")

        headers = {"OpenAI-Beta": "realtime=v1"}
        if self.api_key and not Config.LOCAL_RELAY_SERVER_URL:
            headers["Authorization"] = f"Bearer {self.api_key}"

        ssl_context = None
        if self.url.startswith("wss://"):
            ssl_context = ssl.create_default_context(cafile=certifi.where())

        self.websocket = await websockets.connect(
            self.url,
            ssl=ssl_context,
            additional_headers=headers,
            max_size=None,
        )
        self.connected_at = time.time()
        print("✓ Connected to realtime API")
        if logger:
            logger.info(
                "realtime_api_connected",
                extra={"url": self.url}
            )
        self._receive_task = asyncio.create_task(self._receive_messages())

    async def disconnect(self) -> None:
        """Close the websocket and stop the receive loop"""
        websocket = self.websocket
        self.websocket = None
        task = self._receive_task
        self._receive_task = None
        if task and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if websocket is not None:
            await websocket.close()
            if self.logger:
                self.logger.info(
                    "realtime_api_disconnected",
                    extra={"url": self.url}
                )

    async def send(self, event_name: str, data: Optional[dict] = None) -> dict:
        """
        Send an event to the server.

        Args:
            event_name: Event type (e.g. "input_audio_buffer.append")
            data: Event body merged into the envelope

        Returns:
            The full event as sent
        """
        if not self.is_connected():
            raise RuntimeError("RealtimeAPI is not connected")
        if data is not None and not isinstance(data, dict):
            raise ValueError("data must be a dict")

        event = {"event_id": generate_event_id(), "type": event_name}
        event.update(data or {})

        try:
            await asyncio.wait_for(
                self.websocket.send(json.dumps(event)),
                timeout=Config.SEND_TIMEOUT
            )
        except asyncio.TimeoutError:
            print(f"\n⏱️ WebSocket send timeout - connection may be dead")
            if self.logger:
                self.logger.warning(
                    "websocket_send_timeout",
                    extra={"event_type": event_name}
                )
            raise

        await self.dispatch(f"client.{event_name}", event)
        await self.dispatch("client.*", event)
        return event

    async def _receive_messages(self) -> None:
        """Receive and dispatch server events, one at a time"""
        logger = self.logger
        error = False
        try:
            async for message in self.websocket:
                try:
                    event = json.loads(message)
                except (TypeError, ValueError) as e:
                    # Malformed payloads become protocol errors; the loop keeps going
                    await self._dispatch_protocol_error(f"Invalid JSON from server: {e}", message)
                    continue
                if not isinstance(event, dict) or not event.get("type"):
                    await self._dispatch_protocol_error("Server event without type", message)
                    continue

                await self.dispatch(f"server.{event['type']}", event)
                await self.dispatch("server.*", event)

        except websockets.exceptions.ConnectionClosedOK as e:
            print("\n✓ Realtime session closed by server")
            if logger:
                logger.info(
                    "realtime_connection_closed_ok",
                    extra={"close_code": e.code, "close_reason": e.reason}
                )
        except websockets.exceptions.ConnectionClosedError as e:
            error = True
            print(f"✗ Realtime connection closed unexpectedly: {e}")
            if logger:
                logger.error(
                    "realtime_connection_closed",
                    extra={"close_code": e.code, "close_reason": e.reason}
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = True
            print(f"✗ Receive error: {e}")
            if logger:
                logger.error(
                    "realtime_receive_error",
                    extra={"error": str(e)},
                    exc_info=True
                )

        await self.dispatch("close", {"error": error})

    async def _dispatch_protocol_error(self, message: str, raw) -> None:
        if self.logger:
            self.logger.warning(
                "realtime_protocol_error",
                extra={"error": message, "raw_data": str(raw)[:500]}
            )
        event = {
            "event_id": generate_event_id(),
            "type": "error",
            "error": {"type": "protocol_error", "message": message},
        }
        await self.dispatch("server.error", event)
        await self.dispatch("server.*", event)

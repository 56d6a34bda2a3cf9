"""
EventHandler - explicit subscribe/unsubscribe registry for realtime events.

Provides:
- subscribe() returning a Subscription handle (used to unsubscribe)
- Sequential dispatch on the event loop: each handler (sync or async)
  runs to completion before the next one is called
- Per-handler error isolation so one bad listener cannot stop dispatch
- wait_for_next() for one-shot waits on a named event
"""

import asyncio
import inspect
from collections import defaultdict
from typing import Any, Awaitable, Callable, Optional, Union

from intraview.config import Config

Handler = Callable[[dict], Union[None, Awaitable[None]]]


class Subscription:
    """
    Represents one handler registered for one event name.

    Keep the handle to remove the handler later; unsubscribing twice
    is harmless.
    """

    def __init__(self, event_name: str, handler: Handler):
        self.event_name = event_name
        self.handler = handler
        self._active = True

        # Stats
        self.received_count = 0
        self.error_count = 0

    @property
    def active(self) -> bool:
        return self._active

    def deactivate(self):
        """Mark subscription as inactive (pending removal)."""
        self._active = False


class EventHandler:
    """
    Named-event registry with explicit teardown.

    Usage:
        handler = EventHandler()
        sub = handler.subscribe("conversation.updated", on_update)
        await handler.dispatch("conversation.updated", {"item": item})
        handler.unsubscribe(sub)
    """

    def __init__(self):
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)
        self._next_waiters: dict[str, list[asyncio.Future]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: Handler) -> Subscription:
        """
        Register a handler for an event name.

        Args:
            event_name: Event to listen for (e.g. "server.response.done")
            handler: Callable taking the event dict; may be a coroutine function

        Returns:
            Subscription object (can be used to unsubscribe)
        """
        if handler is None:
            raise ValueError("handler is required")
        subscription = Subscription(event_name, handler)
        self._subscriptions[event_name].append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """
        Remove a subscription.

        Returns:
            True if removed, False if not found
        """
        subscription.deactivate()
        subscriptions = self._subscriptions.get(subscription.event_name, [])
        try:
            subscriptions.remove(subscription)
            return True
        except ValueError:
            return False

    def clear_event_handlers(self) -> None:
        """Drop every subscription and fail any pending waiters."""
        for subscriptions in self._subscriptions.values():
            for sub in subscriptions:
                sub.deactivate()
        self._subscriptions.clear()
        for waiters in self._next_waiters.values():
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()
        self._next_waiters.clear()

    def subscriber_count(self, event_name: Optional[str] = None) -> int:
        if event_name is not None:
            return len(self._subscriptions.get(event_name, []))
        return sum(len(subs) for subs in self._subscriptions.values())

    async def wait_for_next(self, event_name: str, timeout: Optional[float] = None) -> Optional[dict]:
        """
        Wait for the next dispatch of an event name.

        Returns:
            The event dict, or None on timeout
        """
        future = asyncio.get_running_loop().create_future()
        self._next_waiters[event_name].append(future)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            waiters = self._next_waiters.get(event_name, [])
            if future in waiters:
                waiters.remove(future)

    async def dispatch(self, event_name: str, event: Any) -> None:
        """
        Call every handler registered for event_name, in registration order.

        Handler exceptions are logged and swallowed; they never propagate
        back into the caller's receive/send loop.
        """
        for waiter in self._next_waiters.pop(event_name, []):
            if not waiter.done():
                waiter.set_result(event)

        for sub in list(self._subscriptions.get(event_name, [])):
            if not sub.active:
                continue
            sub.received_count += 1
            try:
                result = sub.handler(event)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Log but don't crash dispatcher
                sub.error_count += 1
                print(f"⚠️  Event handler error ({event_name}): {e}")
                logger = Config.LOGGER
                if logger:
                    logger.error(
                        "event_handler_error",
                        extra={
                            "event_name": event_name,
                            "error": str(e),
                        },
                        exc_info=True
                    )

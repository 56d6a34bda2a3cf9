"""Realtime API client: websocket transport, conversation state and events"""

from .event_handler import EventHandler, Subscription
from .items import ConversationItem, DecodedAudio, FormattedContent, ItemStatus, ToolCall
from .conversation import RealtimeConversation
from .api import RealtimeAPI
from .client import RealtimeClient

__all__ = [
    "EventHandler",
    "Subscription",
    "ConversationItem",
    "DecodedAudio",
    "FormattedContent",
    "ItemStatus",
    "ToolCall",
    "RealtimeConversation",
    "RealtimeAPI",
    "RealtimeClient",
]

from chat_sync.realtime.connection_manager import ConnectionManager, ConnectionState
from chat_sync.realtime.event_bus import EventBus
from chat_sync.realtime.presence import PresenceTracker
from chat_sync.realtime.typing_registry import TypingRegistry

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "EventBus",
    "PresenceTracker",
    "TypingRegistry",
]

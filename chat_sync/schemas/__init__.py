from chat_sync.schemas.conversations import Conversation, ConversationList, StartConversationResponse
from chat_sync.schemas.events import MessageReadEvent, PresenceEvent, TypingEvent, WelcomeEvent
from chat_sync.schemas.messages import (
    Attachment,
    DeliveryState,
    LastMessage,
    Message,
    MessagePage,
    OutgoingAttachment,
    OutgoingMessage,
)
from chat_sync.schemas.users import UserSearchResult, UserSummary

__all__ = [
    "Attachment",
    "Conversation",
    "ConversationList",
    "DeliveryState",
    "LastMessage",
    "Message",
    "MessagePage",
    "MessageReadEvent",
    "OutgoingAttachment",
    "OutgoingMessage",
    "PresenceEvent",
    "StartConversationResponse",
    "TypingEvent",
    "UserSearchResult",
    "UserSummary",
    "WelcomeEvent",
]

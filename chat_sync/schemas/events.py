from __future__ import annotations

from pydantic import AliasChoices, Field

from chat_sync.schemas.base import WireModel


class PresenceEvent(WireModel):
    user_id: str = Field(validation_alias=AliasChoices("userId", "user_id", "id"))


class TypingEvent(WireModel):
    user_id: str
    chat_id: str


class MessageReadEvent(WireModel):
    conversation_id: str
    message_id: str | None = None


class WelcomeEvent(WireModel):
    user_id: str | None = None
    connection_id: str | None = None

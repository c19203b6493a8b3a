from __future__ import annotations

from datetime import UTC, datetime

from pydantic import Field, field_validator

from chat_sync.schemas.base import WireModel, ensure_utc
from chat_sync.schemas.messages import LastMessage
from chat_sync.schemas.users import UserSummary

_OLDEST = datetime.min.replace(tzinfo=UTC)


class Conversation(WireModel):
    id: str
    other_participant: UserSummary = Field(alias="otherUser")
    last_message: LastMessage | None = None
    last_message_at: datetime | None = None
    updated_at: datetime | None = None
    unread_count: int = Field(default=0, ge=0)

    @field_validator("last_message_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @property
    def activity_at(self) -> datetime:
        return self.last_message_at or self.updated_at or _OLDEST


class ConversationList(WireModel):
    conversations: list[Conversation] = Field(default_factory=list)


class StartConversationResponse(WireModel):
    conversation: Conversation

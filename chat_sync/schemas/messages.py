from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal
import uuid

from pydantic import Field, field_validator, model_validator

from chat_sync.schemas.base import WireModel, ensure_utc
from chat_sync.schemas.users import UserSummary


class DeliveryState(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


class Attachment(WireModel):
    type: Literal["image", "file"]
    url: str
    file_name: str | None = None


class Message(WireModel):
    id: str | None = None
    conversation_id: str
    sender: UserSummary
    content: str | None = None
    attachment: Attachment | None = None
    reply_to_id: str | None = None
    created_at: datetime
    is_read: bool = False
    client_token: str | None = None
    delivery_state: DeliveryState = DeliveryState.CONFIRMED

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="before")
    @classmethod
    def lift_flat_attachment(cls, data: object) -> object:
        # Older payloads carry messageType/fileUrl/fileName at the top level.
        if not isinstance(data, dict) or data.get("attachment") is not None:
            return data
        message_type = data.get("messageType")
        file_url = data.get("fileUrl")
        if message_type in ("image", "file") and isinstance(file_url, str):
            data = dict(data)
            data["attachment"] = {"type": message_type, "url": file_url, "fileName": data.get("fileName")}
        return data

    @property
    def message_type(self) -> str:
        return self.attachment.type if self.attachment is not None else "text"

    @property
    def is_provisional(self) -> bool:
        return self.delivery_state is DeliveryState.PENDING

    @classmethod
    def provisional(
        cls,
        *,
        conversation_id: str,
        sender: UserSummary,
        content: str | None,
        reply_to_id: str | None,
        attachment: Attachment | None = None,
        client_token: str | None = None,
    ) -> Message:
        return cls(
            conversation_id=conversation_id,
            sender=sender,
            content=content,
            attachment=attachment,
            reply_to_id=reply_to_id,
            created_at=datetime.now(UTC),
            is_read=False,
            client_token=client_token or uuid.uuid4().hex,
            delivery_state=DeliveryState.PENDING,
        )


class LastMessage(WireModel):
    id: str | None = None
    sender: UserSummary | None = None
    message_type: str = "text"
    content: str | None = None
    file_name: str | None = None
    created_at: datetime | None = None

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @classmethod
    def from_message(cls, message: Message) -> LastMessage:
        return cls(
            id=message.id,
            sender=message.sender,
            message_type=message.message_type,
            content=message.content,
            file_name=message.attachment.file_name if message.attachment is not None else None,
            created_at=message.created_at,
        )


class MessagePage(WireModel):
    messages: list[Message] = Field(default_factory=list)
    has_more: bool = False


class OutgoingAttachment(WireModel):
    file_name: str
    data: bytes = Field(repr=False)
    content_type: str = "application/octet-stream"

    def as_pending(self) -> Attachment:
        """Local stand-in until the upload is confirmed. The url stays empty."""
        kind = "image" if self.content_type.startswith("image/") else "file"
        return Attachment(type=kind, url="", file_name=self.file_name)


class OutgoingMessage(WireModel):
    receiver_id: str = Field(min_length=1)
    content: str | None = None
    attachment: OutgoingAttachment | None = None
    reply_to_id: str | None = None

    @field_validator("content")
    @classmethod
    def strip_content(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @model_validator(mode="after")
    def require_body(self) -> OutgoingMessage:
        if self.content is None and self.attachment is None:
            raise ValueError("A message needs content or an attachment")
        return self

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ValidationError

from chat_sync.core.errors import EventRoutingError
from chat_sync.schemas.events import MessageReadEvent, PresenceEvent, TypingEvent, WelcomeEvent
from chat_sync.schemas.messages import Message

CONNECT = "connect"
DISCONNECT = "disconnect"
WELCOME = "connection.welcome"
ERROR = "error"

USER_ONLINE = "userOnline"
USER_OFFLINE = "userOffline"
USER_TYPING = "userTyping"
USER_STOPPED_TYPING = "userStoppedTyping"
NEW_MESSAGE = "newMessage"
MESSAGE_READ = "messageRead"

JOIN_CHAT = "joinChat"
TYPING = "typing"
STOP_TYPING = "stopTyping"

_INBOUND_MODELS: dict[str, type[BaseModel]] = {
    WELCOME: WelcomeEvent,
    USER_ONLINE: PresenceEvent,
    USER_OFFLINE: PresenceEvent,
    USER_TYPING: TypingEvent,
    USER_STOPPED_TYPING: TypingEvent,
    NEW_MESSAGE: Message,
    MESSAGE_READ: MessageReadEvent,
}


def parse_frame(raw_text: str) -> tuple[str, Any]:
    try:
        decoded = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise EventRoutingError(code="invalid_frame", message="Invalid JSON payload") from exc

    if not isinstance(decoded, dict):
        raise EventRoutingError(code="invalid_frame", message="Frame must be an object")

    event_name = decoded.get("event")
    if not isinstance(event_name, str) or not event_name:
        raise EventRoutingError(code="invalid_frame", message="Frame has no event name")

    return event_name, decode_payload(event_name, decoded.get("data"))


def decode_payload(event_name: str, data: Any) -> Any:
    model = _INBOUND_MODELS.get(event_name)
    if model is None:
        return data

    if model is PresenceEvent and isinstance(data, (str, int)):
        data = {"userId": str(data)}
    if data is None and model is WelcomeEvent:
        data = {}

    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise EventRoutingError(
            code="invalid_payload",
            message=f"Malformed {event_name} payload",
            details=exc.errors(include_url=False),
        ) from exc


def outbound_frame(event_name: str, data: Any = None) -> dict[str, object]:
    frame: dict[str, object] = {"event": event_name}
    if data is not None:
        frame["data"] = data
    return frame


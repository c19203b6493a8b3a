from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chat_sync.schemas.messages import OutgoingMessage


class ChatSyncError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        details: object | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class RealtimeConnectionError(ChatSyncError):
    """Handshake or authentication failure for one connection attempt."""


class RestError(ChatSyncError):
    def __init__(
        self,
        *,
        status_code: int | None,
        code: str,
        message: str,
        details: object | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(code=code, message=message, details=details)


class SendFailure(ChatSyncError):
    """The server rejected a send. The draft stays parked under ``client_token``."""

    def __init__(
        self,
        *,
        client_token: str,
        draft: OutgoingMessage,
        code: str,
        message: str,
        details: object | None = None,
    ) -> None:
        self.client_token = client_token
        self.draft = draft
        super().__init__(code=code, message=message, details=details)


class LoadFailure(ChatSyncError):
    pass


class EventRoutingError(ChatSyncError):
    pass


def error_from_payload(status_code: int, payload: object) -> RestError:
    code = "http_error"
    message = "Request failed"
    details: object | None = None
    if isinstance(payload, dict):
        error_payload = payload.get("error")
        if isinstance(error_payload, dict):
            code = str(error_payload.get("code") or code)
            message = str(error_payload.get("message") or message)
            details = error_payload.get("details")
        elif isinstance(payload.get("message"), str):
            message = payload["message"]
    return RestError(status_code=status_code, code=code, message=message, details=details)

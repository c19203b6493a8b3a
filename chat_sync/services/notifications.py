from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Protocol

from chat_sync.schemas.messages import Message

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NotificationRequest:
    title: str
    body: str


class Notifier(Protocol):
    @property
    def permission_granted(self) -> bool: ...

    def play_sound(self) -> None: ...

    def request_notification(self, title: str, body: str) -> None: ...


class LoggingNotifier:
    def __init__(self, *, sound: str = "/notification.mp3", permission_granted: bool = True) -> None:
        self._sound = sound
        self._permission_granted = permission_granted

    @property
    def permission_granted(self) -> bool:
        return self._permission_granted

    def play_sound(self) -> None:
        logger.info("Notification sound requested sound=%s", self._sound)

    def request_notification(self, title: str, body: str) -> None:
        logger.info("System notification requested title=%s body=%s", title, body)


def should_notify(*, is_own_message: bool, is_active_conversation: bool) -> bool:
    return not is_own_message and not is_active_conversation


def build_notification(message: Message, *, title: str, preview_length: int = 50) -> NotificationRequest:
    sender_name = message.sender.first_name or "Someone"
    content = (message.content or "")[:preview_length]
    return NotificationRequest(title=title, body=f"{sender_name}: {content}")


def deliver(notifier: Notifier, request: NotificationRequest) -> None:
    try:
        notifier.play_sound()
    except Exception as exc:
        logger.warning("Notification sound failed error=%s", exc)

    try:
        if notifier.permission_granted:
            notifier.request_notification(request.title, request.body)
        else:
            logger.debug("System notification skipped, permission not granted")
    except Exception as exc:
        logger.warning("System notification failed error=%s", exc)

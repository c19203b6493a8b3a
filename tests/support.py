from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any, Callable

from chat_sync.core.errors import RestError
from chat_sync.realtime import protocol
from chat_sync.realtime.event_bus import EventBus
from chat_sync.schemas.conversations import Conversation
from chat_sync.schemas.events import WelcomeEvent
from chat_sync.schemas.messages import LastMessage, Message, MessagePage, OutgoingMessage
from chat_sync.schemas.users import UserSummary

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


def make_user(user_id: str, first_name: str | None = None) -> UserSummary:
    return UserSummary(id=user_id, first_name=first_name or user_id.capitalize())


def make_message(
    message_id: str,
    *,
    conversation_id: str = "c-bob",
    sender_id: str = "bob",
    minutes: int = 0,
    content: str | None = "hello",
    is_read: bool = False,
) -> Message:
    return Message(
        id=message_id,
        conversation_id=conversation_id,
        sender=make_user(sender_id),
        content=content,
        created_at=at(minutes),
        is_read=is_read,
    )


def make_conversation(
    conversation_id: str,
    other_id: str,
    *,
    minutes: int | None = None,
    unread: int = 0,
    last_content: str = "earlier",
) -> Conversation:
    last_message = None
    if minutes is not None:
        last_message = LastMessage(id=f"{conversation_id}-last", sender=make_user(other_id), content=last_content, created_at=at(minutes))
    return Conversation(
        id=conversation_id,
        other_participant=make_user(other_id),
        last_message=last_message,
        last_message_at=at(minutes) if minutes is not None else None,
        unread_count=unread,
    )


class FakeChatApi:
    def __init__(self) -> None:
        self.token: str | None = None
        self.closed = False
        self.calls: list[tuple[str, object]] = []
        self.conversations: list[Conversation] = []
        self.pages: dict[tuple[str, int], MessagePage] = {}
        self.send_results: list[Message] = []
        self.send_gate: asyncio.Event | None = None
        self.pages_gate: asyncio.Event | None = None
        self.read_gate: asyncio.Event | None = None
        self.started: dict[str, Conversation] = {}
        self.users: list[UserSummary] = []
        self.failing: set[str] = set()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failing:
            raise RestError(status_code=500, code="server_error", message=f"{operation} failed")

    def set_token(self, token: str | None) -> None:
        self.token = token

    async def close(self) -> None:
        self.closed = True

    async def list_conversations(self) -> list[Conversation]:
        self.calls.append(("list_conversations", None))
        self._maybe_fail("list_conversations")
        return list(self.conversations)

    async def list_messages(self, conversation_id: str, *, page: int = 1) -> MessagePage:
        self.calls.append(("list_messages", (conversation_id, page)))
        if self.pages_gate is not None:
            await self.pages_gate.wait()
        self._maybe_fail("list_messages")
        return self.pages.get((conversation_id, page), MessagePage())

    async def send_message(self, draft: OutgoingMessage) -> Message:
        self.calls.append(("send_message", draft))
        if self.send_gate is not None:
            await self.send_gate.wait()
        self._maybe_fail("send_message")
        return self.send_results.pop(0)

    async def mark_conversation_read(self, conversation_id: str) -> None:
        self.calls.append(("mark_conversation_read", conversation_id))
        if self.read_gate is not None:
            await self.read_gate.wait()
        self._maybe_fail("mark_conversation_read")

    async def start_conversation(self, user_id: str) -> Conversation:
        self.calls.append(("start_conversation", user_id))
        self._maybe_fail("start_conversation")
        return self.started[user_id]

    async def search_users(self, query: str) -> list[UserSummary]:
        self.calls.append(("search_users", query))
        self._maybe_fail("search_users")
        return list(self.users)

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeConnection:
    def __init__(self) -> None:
        self.bus = EventBus()
        self.emitted: list[tuple[str, Any]] = []
        self.identity_token: str | None = None

    def on_event(self, event_name: str, handler: Callable[[Any], Any]) -> Callable[[], None]:
        return self.bus.subscribe(event_name, handler)

    def emit(self, event_name: str, payload: Any = None) -> bool:
        self.emitted.append((event_name, payload))
        return True

    async def connect(self, identity_token: str) -> WelcomeEvent:
        self.identity_token = identity_token
        welcome = WelcomeEvent(user_id="alice", connection_id="conn-1")
        await self.bus.publish(protocol.CONNECT, welcome)
        return welcome

    async def disconnect(self) -> None:
        if self.identity_token is None:
            return
        self.identity_token = None
        await self.bus.publish(protocol.DISCONNECT, {"reason": "client"})

    async def deliver(self, event_name: str, payload: Any) -> None:
        await self.bus.publish(event_name, protocol.decode_payload(event_name, payload))

    def emitted_names(self) -> list[str]:
        return [name for name, _ in self.emitted]


class RecordingNotifier:
    def __init__(self, *, permission_granted: bool = True) -> None:
        self.permission_granted = permission_granted
        self.sounds = 0
        self.notifications: list[tuple[str, str]] = []

    def play_sound(self) -> None:
        self.sounds += 1

    def request_notification(self, title: str, body: str) -> None:
        self.notifications.append((title, body))


class ManualClock:
    def __init__(self, now_ms: int = 0) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


async def wait_for(predicate: Callable[[], bool], *, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition was not met in time")
        await asyncio.sleep(0.01)

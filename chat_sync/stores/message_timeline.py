from __future__ import annotations

from dataclasses import dataclass, field
import logging

from chat_sync.core.errors import LoadFailure, RestError
from chat_sync.core.observable import Observable
from chat_sync.schemas.messages import Message
from chat_sync.services.chat_api import ChatApi

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TimelinePage:
    messages: list[Message] = field(default_factory=list)
    has_more: bool = False
    error: LoadFailure | None = None


class MessageTimeline(Observable):
    """Chronological messages of the active conversation.

    Confirmed messages are unique by server id. Provisional messages carry no id
    until ``confirm`` swaps them for the server copy, keyed by ``client_token``.
    """

    def __init__(self, api: ChatApi) -> None:
        super().__init__()
        self._api = api
        self._conversation_id: str | None = None
        self._messages: list[Message] = []
        self._ids: set[str] = set()
        self.page = 0
        self.has_more = False
        self.error: LoadFailure | None = None

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    def reset(self, conversation_id: str | None) -> None:
        self._conversation_id = conversation_id
        self._messages = []
        self._ids = set()
        self.page = 0
        self.has_more = False
        self.error = None
        self._notify_listeners()

    async def load(self, conversation_id: str, page: int = 1) -> TimelinePage:
        if page == 1 and conversation_id != self._conversation_id:
            self.reset(conversation_id)
        known_ids = set(self._ids)

        try:
            result = await self._api.list_messages(conversation_id, page=page)
        except RestError as exc:
            logger.warning("Message page load failed conversation_id=%s page=%s code=%s", conversation_id, page, exc.code)
            failure = LoadFailure(code=exc.code, message="Could not load messages", details=exc.message)
            if conversation_id == self._conversation_id:
                self.error = failure
                if page == 1:
                    arrived = self._arrived_since(known_ids)
                    self._ids = {message.id for message in arrived}
                    self._messages = arrived + self._pending()
                    self.has_more = False
                self._notify_listeners()
            return TimelinePage(error=failure)

        ordered = sorted(result.messages, key=lambda message: message.created_at)
        if conversation_id != self._conversation_id:
            logger.debug("Discarding stale message page conversation_id=%s page=%s", conversation_id, page)
            return TimelinePage(messages=ordered, has_more=result.has_more)

        if page == 1:
            # Page 1 replaces the timeline, but messages appended while it was in flight stay.
            arrived = self._arrived_since(known_ids)
            pending = self._pending()
            self._ids = set()
            merged = self._unseen(ordered + arrived)
            self._messages = sorted(merged, key=lambda message: message.created_at) + pending
        else:
            self._messages = self._unseen(ordered) + self._messages

        self.page = page
        self.has_more = result.has_more
        self.error = None
        logger.debug(
            "Message page merged conversation_id=%s page=%s count=%s has_more=%s",
            conversation_id,
            page,
            len(ordered),
            result.has_more,
        )
        self._notify_listeners()
        return TimelinePage(messages=ordered, has_more=result.has_more)

    def _unseen(self, messages: list[Message]) -> list[Message]:
        fresh: list[Message] = []
        for message in messages:
            if message.id is None or message.id in self._ids:
                continue
            self._ids.add(message.id)
            fresh.append(message)
        return fresh

    def _arrived_since(self, known_ids: set[str]) -> list[Message]:
        return [
            message
            for message in self._messages
            if not message.is_provisional and message.id not in known_ids
        ]

    def _pending(self) -> list[Message]:
        return [message for message in self._messages if message.is_provisional]

    def append(self, message: Message) -> bool:
        if message.conversation_id != self._conversation_id:
            logger.debug("Append for inactive conversation ignored conversation_id=%s", message.conversation_id)
            return False
        if message.id is None:
            raise ValueError("Only confirmed messages can be appended; use add_provisional")
        if message.id in self._ids:
            logger.debug("Duplicate message skipped message_id=%s", message.id)
            return False

        self._ids.add(message.id)
        self._messages.append(message)
        self._notify_listeners()
        return True

    def add_provisional(self, message: Message) -> None:
        if not message.is_provisional or message.client_token is None:
            raise ValueError("Provisional messages need a client token")
        if message.conversation_id != self._conversation_id:
            return
        self._messages.append(message)
        self._notify_listeners()

    def _provisional_index(self, client_token: str) -> int | None:
        for index, message in enumerate(self._messages):
            if message.is_provisional and message.client_token == client_token:
                return index
        return None

    def confirm(self, client_token: str, message: Message) -> bool:
        index = self._provisional_index(client_token)
        if message.id is not None and message.id in self._ids:
            if index is not None:
                del self._messages[index]
                logger.debug("Provisional message collapsed into echo message_id=%s", message.id)
                self._notify_listeners()
            return False
        if index is None:
            return self.append(message)
        if message.conversation_id != self._conversation_id or message.id is None:
            del self._messages[index]
            self._notify_listeners()
            return False

        self._ids.add(message.id)
        self._messages[index] = message.model_copy(update={"client_token": client_token})
        logger.debug("Provisional message confirmed message_id=%s", message.id)
        self._notify_listeners()
        return True

    def discard_provisional(self, client_token: str) -> bool:
        index = self._provisional_index(client_token)
        if index is None:
            return False
        del self._messages[index]
        self._notify_listeners()
        return True

    def mark_all_read(self) -> int:
        changed = 0
        for index, message in enumerate(self._messages):
            if not message.is_read:
                self._messages[index] = message.model_copy(update={"is_read": True})
                changed += 1
        if changed:
            self._notify_listeners()
        return changed

    def mark_message_read(self, message_id: str) -> bool:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                if not message.is_read:
                    self._messages[index] = message.model_copy(update={"is_read": True})
                    self._notify_listeners()
                return True
        return False

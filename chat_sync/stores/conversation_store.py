from __future__ import annotations

from datetime import UTC, datetime
import logging

from chat_sync.core.errors import LoadFailure, RestError
from chat_sync.core.observable import Observable
from chat_sync.schemas.conversations import Conversation
from chat_sync.schemas.messages import LastMessage, Message
from chat_sync.services.chat_api import ChatApi

logger = logging.getLogger(__name__)


def _sorted_by_activity(conversations: list[Conversation]) -> list[Conversation]:
    return sorted(conversations, key=lambda conversation: conversation.activity_at, reverse=True)


class ConversationStore(Observable):
    def __init__(self, api: ChatApi, *, preview_length: int = 40) -> None:
        super().__init__()
        self._api = api
        self._preview_length = preview_length
        self._conversations: list[Conversation] = []
        self._active_conversation_id: str | None = None
        self.loading = False
        self.error: LoadFailure | None = None

    @property
    def conversations(self) -> list[Conversation]:
        return list(self._conversations)

    @property
    def active_conversation_id(self) -> str | None:
        return self._active_conversation_id

    @property
    def total_unread(self) -> int:
        return sum(conversation.unread_count for conversation in self._conversations)

    def get(self, conversation_id: str) -> Conversation | None:
        for conversation in self._conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def set_active(self, conversation_id: str | None) -> None:
        self._active_conversation_id = conversation_id
        logger.debug("Active conversation set conversation_id=%s", conversation_id)

    async def load(self) -> list[Conversation]:
        self.loading = True
        try:
            conversations = await self._api.list_conversations()
        except RestError as exc:
            logger.warning("Conversation list load failed code=%s", exc.code)
            self._conversations = []
            self.error = LoadFailure(code=exc.code, message="Could not load conversations", details=exc.message)
            self._notify_listeners()
            return []
        finally:
            self.loading = False

        unique: dict[str, Conversation] = {}
        for conversation in conversations:
            unique.setdefault(conversation.id, conversation)
        self._conversations = _sorted_by_activity(list(unique.values()))
        self.error = None
        logger.info("Conversations loaded count=%s", len(self._conversations))
        self._notify_listeners()
        return self.conversations

    def apply_incoming_message(self, message: Message, is_own_message: bool) -> bool:
        for index, conversation in enumerate(self._conversations):
            if conversation.id == message.conversation_id:
                break
        else:
            logger.debug("Message for unknown conversation ignored conversation_id=%s", message.conversation_id)
            return False

        increments = not is_own_message and message.conversation_id != self._active_conversation_id
        self._conversations[index] = conversation.model_copy(
            update={
                "last_message": LastMessage.from_message(message),
                "last_message_at": message.created_at,
                "unread_count": conversation.unread_count + 1 if increments else conversation.unread_count,
            }
        )
        self._conversations = _sorted_by_activity(self._conversations)
        logger.debug(
            "Conversation updated conversation_id=%s unread_increment=%s",
            message.conversation_id,
            increments,
        )
        self._notify_listeners()
        return True

    def mark_read(self, conversation_id: str) -> bool:
        for index, conversation in enumerate(self._conversations):
            if conversation.id != conversation_id:
                continue
            if conversation.unread_count:
                self._conversations[index] = conversation.model_copy(update={"unread_count": 0})
                self._notify_listeners()
            return True
        return False

    async def start_conversation(self, user_id: str) -> Conversation:
        conversation = await self._api.start_conversation(user_id)
        existing = self.get(conversation.id)
        if existing is not None:
            logger.debug("Conversation already listed conversation_id=%s", conversation.id)
            return existing

        if conversation.last_message_at is None and conversation.updated_at is None:
            conversation = conversation.model_copy(update={"updated_at": datetime.now(UTC)})
        self._conversations = _sorted_by_activity([conversation, *self._conversations])
        logger.info("Conversation started conversation_id=%s user_id=%s", conversation.id, user_id)
        self._notify_listeners()
        return conversation

    def preview(self, conversation: Conversation, current_user_id: str | None) -> str:
        last_message = conversation.last_message
        if last_message is None:
            return "Start the conversation"

        is_own = last_message.sender is not None and last_message.sender.id == current_user_id
        if last_message.message_type == "image":
            return "You sent a photo" if is_own else "Sent a photo"
        if last_message.message_type == "file":
            return "You sent a file" if is_own else f"Sent {last_message.file_name or 'a file'}"

        content = last_message.content or ""
        if len(content) > self._preview_length:
            content = content[: self._preview_length] + "..."
        return f"You: {content}" if is_own else content

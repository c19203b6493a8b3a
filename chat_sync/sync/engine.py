from __future__ import annotations

import asyncio
import logging
from typing import Any
import uuid

from chat_sync.core.errors import RestError, SendFailure
from chat_sync.core.security import resolve_user_id
from chat_sync.core.settings import Settings, get_settings
from chat_sync.realtime import protocol
from chat_sync.realtime.connection_manager import ConnectionManager
from chat_sync.realtime.presence import PresenceTracker
from chat_sync.realtime.typing_registry import TypingRegistry
from chat_sync.schemas.conversations import Conversation
from chat_sync.schemas.events import MessageReadEvent, PresenceEvent, TypingEvent
from chat_sync.schemas.messages import Message, OutgoingAttachment, OutgoingMessage
from chat_sync.schemas.users import UserSummary
from chat_sync.services import notifications
from chat_sync.services.chat_api import ChatApi
from chat_sync.services.notifications import Notifier
from chat_sync.stores.conversation_store import ConversationStore
from chat_sync.stores.message_timeline import MessageTimeline, TimelinePage
from chat_sync.sync.typing_announcer import TypingAnnouncer

logger = logging.getLogger(__name__)


class SyncEngine:
    """Routes inbound events into the stores and merges optimistic sends.

    The stores are written only from here. Store updates run to completion
    before any network call is awaited.
    """

    def __init__(
        self,
        *,
        api: ChatApi,
        connection: ConnectionManager,
        conversations: ConversationStore,
        timeline: MessageTimeline,
        presence: PresenceTracker,
        typing: TypingRegistry,
        notifier: Notifier,
        settings: Settings | None = None,
        current_user_id: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._api = api
        self._connection = connection
        self._conversations = conversations
        self._timeline = timeline
        self._presence = presence
        self._typing = typing
        self._notifier = notifier
        self._current_user_id = current_user_id
        self._active: Conversation | None = None
        self._failed_sends: dict[str, OutgoingMessage] = {}
        self._receipt_tasks: set[asyncio.Task[None]] = set()
        self._announcer = TypingAnnouncer(connection, ttl_ms=self._settings.typing_ttl_ms)
        self._unsubscribers = [
            connection.on_event(protocol.CONNECT, self._on_connect),
            connection.on_event(protocol.DISCONNECT, self._on_disconnect),
            connection.on_event(protocol.USER_ONLINE, self._on_user_online),
            connection.on_event(protocol.USER_OFFLINE, self._on_user_offline),
            connection.on_event(protocol.USER_TYPING, self._on_user_typing),
            connection.on_event(protocol.USER_STOPPED_TYPING, self._on_user_stopped_typing),
            connection.on_event(protocol.NEW_MESSAGE, self._on_new_message),
            connection.on_event(protocol.MESSAGE_READ, self._on_message_read),
        ]

    @property
    def current_user_id(self) -> str | None:
        return self._current_user_id

    @property
    def active_conversation(self) -> Conversation | None:
        return self._active

    @property
    def active_conversation_id(self) -> str | None:
        return self._active.id if self._active is not None else None

    @property
    def conversations(self) -> list[Conversation]:
        return self._conversations.conversations

    @property
    def messages(self) -> list[Message]:
        return self._timeline.messages

    @property
    def total_unread(self) -> int:
        return self._conversations.total_unread

    @property
    def failed_sends(self) -> dict[str, OutgoingMessage]:
        return dict(self._failed_sends)

    def is_online(self, user_id: str) -> bool:
        return self._presence.is_online(user_id)

    def is_typing(self, conversation_id: str, user_id: str) -> bool:
        return self._typing.is_typing(conversation_id, user_id)

    async def start(self, identity_token: str, *, current_user_id: str | None = None) -> list[Conversation]:
        self._current_user_id = current_user_id or resolve_user_id(identity_token)
        self._api.set_token(identity_token)
        logger.info("Sync engine starting user_id=%s", self._current_user_id)
        await self._connection.connect(identity_token)
        self._typing.start_sweeper()
        return await self._conversations.load()

    async def stop(self) -> None:
        self._announcer.stop()
        for task in list(self._receipt_tasks):
            task.cancel()
        await self.flush_read_receipts()
        await self._typing.stop_sweeper()
        await self._connection.disconnect()
        await self._api.close()
        logger.info("Sync engine stopped user_id=%s", self._current_user_id)

    async def select_conversation(self, conversation: Conversation | str) -> TimelinePage:
        if isinstance(conversation, str):
            found = self._conversations.get(conversation)
            if found is None:
                raise KeyError(conversation)
            conversation = found

        self._announcer.stop()
        self._active = conversation
        self._conversations.set_active(conversation.id)
        self._timeline.reset(conversation.id)
        self._connection.emit(protocol.JOIN_CHAT, conversation.id)
        logger.info("Conversation selected conversation_id=%s", conversation.id)

        page = await self._timeline.load(conversation.id, 1)
        if self.active_conversation_id == conversation.id:
            await self._acknowledge(conversation.id)
        return page

    def close_conversation(self) -> None:
        self._announcer.stop()
        self._active = None
        self._conversations.set_active(None)
        self._timeline.reset(None)

    async def load_more(self) -> TimelinePage:
        conversation_id = self.active_conversation_id
        if conversation_id is None or not self._timeline.has_more:
            return TimelinePage()
        return await self._timeline.load(conversation_id, self._timeline.page + 1)

    async def reload_conversations(self) -> list[Conversation]:
        return await self._conversations.load()

    async def send(
        self,
        receiver_id: str,
        content: str | None = None,
        attachment: OutgoingAttachment | None = None,
        reply_to_id: str | None = None,
    ) -> Message:
        draft = OutgoingMessage(
            receiver_id=receiver_id,
            content=content,
            attachment=attachment,
            reply_to_id=reply_to_id,
        )
        return await self._send_draft(draft)

    async def resend(self, client_token: str) -> Message:
        draft = self._failed_sends.pop(client_token)
        logger.info("Resending parked message client_token=%s", client_token)
        return await self._send_draft(draft)

    def discard_failed(self, client_token: str) -> None:
        self._failed_sends.pop(client_token, None)

    async def _send_draft(self, draft: OutgoingMessage) -> Message:
        self._announcer.stop()

        client_token = uuid.uuid4().hex
        active = self._active
        if (
            active is not None
            and active.other_participant.id == draft.receiver_id
            and self._current_user_id is not None
        ):
            self._timeline.add_provisional(
                Message.provisional(
                    conversation_id=active.id,
                    sender=UserSummary(id=self._current_user_id),
                    content=draft.content,
                    attachment=draft.attachment.as_pending() if draft.attachment is not None else None,
                    reply_to_id=draft.reply_to_id,
                    client_token=client_token,
                )
            )

        try:
            message = await self._api.send_message(draft)
        except RestError as exc:
            self._timeline.discard_provisional(client_token)
            self._failed_sends[client_token] = draft
            logger.warning("Send failed receiver_id=%s client_token=%s code=%s", draft.receiver_id, client_token, exc.code)
            raise SendFailure(
                client_token=client_token,
                draft=draft,
                code=exc.code,
                message=exc.message,
                details=exc.details,
            ) from exc

        if self.active_conversation_id == message.conversation_id:
            self._timeline.confirm(client_token, message)
        else:
            self._timeline.discard_provisional(client_token)
        self._conversations.apply_incoming_message(message, is_own_message=True)
        logger.info("Message sent message_id=%s conversation_id=%s", message.id, message.conversation_id)
        return message

    async def mark_read(self, conversation_id: str) -> None:
        self._mark_read_locally(conversation_id)
        await self._send_read_receipt(conversation_id)

    def _mark_read_locally(self, conversation_id: str) -> None:
        self._conversations.mark_read(conversation_id)
        if conversation_id == self.active_conversation_id:
            self._timeline.mark_all_read()

    async def _send_read_receipt(self, conversation_id: str) -> None:
        await self._api.mark_conversation_read(conversation_id)
        self._connection.emit(protocol.MESSAGE_READ, {"conversationId": conversation_id})

    async def _acknowledge(self, conversation_id: str) -> None:
        try:
            await self.mark_read(conversation_id)
        except RestError as exc:
            logger.warning("Read acknowledgement failed conversation_id=%s code=%s", conversation_id, exc.code)

    async def _deliver_read_receipt(self, conversation_id: str) -> None:
        try:
            await self._send_read_receipt(conversation_id)
        except RestError as exc:
            logger.warning("Read acknowledgement failed conversation_id=%s code=%s", conversation_id, exc.code)

    def _schedule_read_receipt(self, conversation_id: str) -> None:
        # Inbound dispatch must not wait on the PATCH round trip.
        task = asyncio.get_running_loop().create_task(self._deliver_read_receipt(conversation_id))
        self._receipt_tasks.add(task)
        task.add_done_callback(self._on_receipt_done)

    def _on_receipt_done(self, task: asyncio.Task[None]) -> None:
        self._receipt_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Read receipt task crashed", exc_info=exc)

    async def flush_read_receipts(self) -> None:
        if self._receipt_tasks:
            await asyncio.gather(*self._receipt_tasks, return_exceptions=True)

    async def start_conversation(self, user_id: str) -> Conversation:
        return await self._conversations.start_conversation(user_id)

    async def search_users(self, query: str) -> list[UserSummary]:
        term = query.strip()
        if len(term) < self._settings.user_search_min_length:
            return []
        try:
            return await self._api.search_users(term)
        except RestError as exc:
            logger.warning("User search failed code=%s", exc.code)
            return []

    def handle_typing(self) -> bool:
        conversation_id = self.active_conversation_id
        if conversation_id is None:
            return False
        self._announcer.keystroke(conversation_id)
        return True

    def stop_typing(self) -> None:
        self._announcer.stop()

    async def _on_connect(self, _: Any) -> None:
        conversation_id = self.active_conversation_id
        if conversation_id is not None:
            self._connection.emit(protocol.JOIN_CHAT, conversation_id)

    async def _on_disconnect(self, _: Any) -> None:
        self._announcer.reset()
        self._presence.clear()
        self._typing.clear()

    def _on_user_online(self, event: PresenceEvent) -> None:
        self._presence.mark_online(event.user_id)

    def _on_user_offline(self, event: PresenceEvent) -> None:
        self._presence.mark_offline(event.user_id)

    def _on_user_typing(self, event: TypingEvent) -> None:
        self._typing.set_typing(event.chat_id, event.user_id)

    def _on_user_stopped_typing(self, event: TypingEvent) -> None:
        self._typing.clear_typing(event.chat_id, event.user_id)

    def _on_new_message(self, message: Message) -> None:
        is_own_message = message.sender.id == self._current_user_id
        active_id = self.active_conversation_id

        if active_id is not None and message.conversation_id == active_id:
            self._timeline.append(message)
            self._conversations.apply_incoming_message(message, is_own_message)
            if not is_own_message:
                self._mark_read_locally(active_id)
                self._schedule_read_receipt(active_id)
            return

        self._conversations.apply_incoming_message(message, is_own_message)
        if notifications.should_notify(is_own_message=is_own_message, is_active_conversation=False):
            request = notifications.build_notification(
                message,
                title=self._settings.notification_title,
                preview_length=self._settings.notification_preview_length,
            )
            notifications.deliver(self._notifier, request)

    def _on_message_read(self, event: MessageReadEvent) -> None:
        if event.conversation_id != self.active_conversation_id or event.message_id is None:
            return
        self._timeline.mark_message_read(event.message_id)

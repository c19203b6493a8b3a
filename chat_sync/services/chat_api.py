from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import aiohttp
from pydantic import ValidationError

from chat_sync.core.errors import RestError, error_from_payload
from chat_sync.schemas.conversations import Conversation, ConversationList, StartConversationResponse
from chat_sync.schemas.messages import Message, MessagePage, OutgoingMessage
from chat_sync.schemas.users import UserSearchResult, UserSummary

logger = logging.getLogger(__name__)


class ChatApi:
    def __init__(
        self,
        *,
        base_url: str,
        timeout_sec: float = 15.0,
        session_factory: Callable[..., aiohttp.ClientSession] = aiohttp.ClientSession,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_sec)
        self._session_factory = session_factory
        self._session: aiohttp.ClientSession | None = None
        self._token: str | None = None

    def set_token(self, token: str | None) -> None:
        self._token = token

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = self._session_factory(timeout=self._timeout)
        return self._session

    def _headers(self) -> dict[str, str]:
        if self._token is None:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._base_url}{path}"
        logger.debug("REST request started method=%s path=%s", method, path)
        try:
            async with self._get_session().request(method, url, headers=self._headers(), **kwargs) as response:
                payload: Any = None
                if response.content_type == "application/json":
                    payload = await response.json()
                if response.status >= 400:
                    logger.warning("REST request rejected method=%s path=%s status=%s", method, path, response.status)
                    raise error_from_payload(response.status, payload)
                logger.debug("REST request completed method=%s path=%s status=%s", method, path, response.status)
                return payload
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("REST request failed method=%s path=%s error=%r", method, path, exc)
            raise RestError(status_code=None, code="network_error", message="Network request failed") from exc

    def _parse(self, model: Any, payload: Any, *, path: str) -> Any:
        try:
            return model.model_validate(payload if payload is not None else {})
        except ValidationError as exc:
            logger.warning("Unexpected response shape path=%s", path)
            raise RestError(
                status_code=None,
                code="invalid_response",
                message="Unexpected response payload",
                details=exc.errors(include_url=False),
            ) from exc

    async def list_conversations(self) -> list[Conversation]:
        path = "/messages/conversations"
        payload = await self._request("GET", path)
        return self._parse(ConversationList, payload, path=path).conversations

    async def list_messages(self, conversation_id: str, *, page: int = 1) -> MessagePage:
        path = f"/messages/conversations/{conversation_id}"
        payload = await self._request("GET", path, params={"page": str(page)})
        return self._parse(MessagePage, payload, path=path)

    async def send_message(self, draft: OutgoingMessage) -> Message:
        path = "/messages/send"
        form = aiohttp.FormData()
        form.add_field("receiverId", draft.receiver_id)
        if draft.content:
            form.add_field("content", draft.content)
        if draft.attachment is not None:
            form.add_field(
                "file",
                draft.attachment.data,
                filename=draft.attachment.file_name,
                content_type=draft.attachment.content_type,
            )
        if draft.reply_to_id:
            form.add_field("replyToId", draft.reply_to_id)

        payload = await self._request("POST", path, data=form)
        data = payload.get("data") if isinstance(payload, dict) else None
        return self._parse(Message, data, path=path)

    async def mark_conversation_read(self, conversation_id: str) -> None:
        await self._request("PATCH", f"/messages/conversations/{conversation_id}/read")

    async def start_conversation(self, user_id: str) -> Conversation:
        path = "/messages/conversations/start"
        payload = await self._request("POST", path, json={"userId": user_id})
        return self._parse(StartConversationResponse, payload, path=path).conversation

    async def search_users(self, query: str) -> list[UserSummary]:
        path = "/users/search"
        payload = await self._request("GET", path, params={"q": query})
        return self._parse(UserSearchResult, payload, path=path).users

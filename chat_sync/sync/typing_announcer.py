from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from chat_sync.realtime import protocol

logger = logging.getLogger(__name__)


class Emitter(Protocol):
    def emit(self, event_name: str, payload: Any = None) -> bool: ...


class TypingAnnouncer:
    """Announces our own typing: ``typing`` per keystroke, ``stopTyping`` after a quiet window."""

    def __init__(self, emitter: Emitter, *, ttl_ms: int = 3000) -> None:
        self._emitter = emitter
        self._ttl_sec = ttl_ms / 1000.0
        self._conversation_id: str | None = None
        self._handle: asyncio.TimerHandle | None = None

    @property
    def announcing(self) -> str | None:
        return self._conversation_id

    def keystroke(self, conversation_id: str) -> None:
        if self._conversation_id is not None and self._conversation_id != conversation_id:
            self.stop()

        self._emitter.emit(protocol.TYPING, {"chatId": conversation_id})
        self._conversation_id = conversation_id
        if self._handle is not None:
            self._handle.cancel()
        self._handle = asyncio.get_running_loop().call_later(self._ttl_sec, self._expire, conversation_id)

    def stop(self) -> None:
        conversation_id = self._conversation_id
        self.reset()
        if conversation_id is not None:
            self._emitter.emit(protocol.STOP_TYPING, {"chatId": conversation_id})

    def reset(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._conversation_id = None

    def _expire(self, conversation_id: str) -> None:
        if self._conversation_id != conversation_id:
            return
        self._handle = None
        self._conversation_id = None
        logger.debug("Typing window elapsed conversation_id=%s", conversation_id)
        self._emitter.emit(protocol.STOP_TYPING, {"chatId": conversation_id})

from __future__ import annotations

import asyncio
import heapq
import logging
from time import monotonic
from typing import Callable

from chat_sync.core.observable import Observable

logger = logging.getLogger(__name__)

TypingKey = tuple[str, str]

DEFAULT_TTL_MS = 3000


def _now_ms() -> int:
    return int(monotonic() * 1000)


class TypingRegistry(Observable):
    """Who is typing where, as ``(conversation_id, user_id) -> expires_at_ms``.

    Expirations sit in a min-heap. Refreshing a key pushes a new heap entry and
    leaves the old one behind; ``sweep`` discards heap entries whose expiry no
    longer matches the live table.
    """

    def __init__(
        self,
        *,
        ttl_ms: int = DEFAULT_TTL_MS,
        sweep_interval_ms: int = 250,
        now_func: Callable[[], int] = _now_ms,
    ) -> None:
        super().__init__()
        self._ttl_ms = ttl_ms
        self._sweep_interval_sec = sweep_interval_ms / 1000.0
        self._now = now_func
        self._entries: dict[TypingKey, int] = {}
        self._expirations: list[tuple[int, TypingKey]] = []
        self._sweeper_task: asyncio.Task[None] | None = None

    def set_typing(self, conversation_id: str, user_id: str) -> int:
        key = (conversation_id, user_id)
        expires_at_ms = self._now() + self._ttl_ms
        is_new = key not in self._entries
        self._entries[key] = expires_at_ms
        heapq.heappush(self._expirations, (expires_at_ms, key))
        if is_new:
            logger.debug("Typing started conversation_id=%s user_id=%s", conversation_id, user_id)
            self._notify_listeners()
        return expires_at_ms

    def clear_typing(self, conversation_id: str, user_id: str) -> None:
        if self._entries.pop((conversation_id, user_id), None) is None:
            return
        logger.debug("Typing stopped conversation_id=%s user_id=%s", conversation_id, user_id)
        self._notify_listeners()

    def is_typing(self, conversation_id: str, user_id: str) -> bool:
        expires_at_ms = self._entries.get((conversation_id, user_id))
        return expires_at_ms is not None and expires_at_ms > self._now()

    def typing_users(self, conversation_id: str) -> list[str]:
        now_ms = self._now()
        return sorted(
            user_id
            for (entry_conversation_id, user_id), expires_at_ms in self._entries.items()
            if entry_conversation_id == conversation_id and expires_at_ms > now_ms
        )

    def sweep(self) -> int:
        now_ms = self._now()
        expired = 0
        while self._expirations and self._expirations[0][0] <= now_ms:
            expires_at_ms, key = heapq.heappop(self._expirations)
            if self._entries.get(key) != expires_at_ms:
                continue
            del self._entries[key]
            expired += 1
            logger.debug("Typing expired conversation_id=%s user_id=%s", key[0], key[1])
        if not self._entries:
            self._expirations.clear()
        if expired:
            self._notify_listeners()
        return expired

    def clear(self) -> None:
        had_entries = bool(self._entries)
        self._entries.clear()
        self._expirations.clear()
        if had_entries:
            self._notify_listeners()

    def start_sweeper(self) -> None:
        if self._sweeper_task is None:
            self._sweeper_task = asyncio.create_task(self._sweep_loop())

    async def stop_sweeper(self) -> None:
        if self._sweeper_task is None:
            return
        self._sweeper_task.cancel()
        try:
            await self._sweeper_task
        except asyncio.CancelledError:
            pass
        self._sweeper_task = None

    async def _sweep_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._sweep_interval_sec)
                self.sweep()
        except asyncio.CancelledError:
            return

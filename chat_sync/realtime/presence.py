from __future__ import annotations

import logging

from chat_sync.core.observable import Observable

logger = logging.getLogger(__name__)


class PresenceTracker(Observable):
    def __init__(self) -> None:
        super().__init__()
        self._online: set[str] = set()

    def mark_online(self, user_id: str) -> None:
        if user_id in self._online:
            return
        self._online.add(user_id)
        logger.debug("User online user_id=%s", user_id)
        self._notify_listeners()

    def mark_offline(self, user_id: str) -> None:
        if user_id not in self._online:
            return
        self._online.discard(user_id)
        logger.debug("User offline user_id=%s", user_id)
        self._notify_listeners()

    def is_online(self, user_id: str) -> bool:
        return user_id in self._online

    def online_users(self) -> frozenset[str]:
        return frozenset(self._online)

    def clear(self) -> None:
        if not self._online:
            return
        logger.debug("Presence cleared count=%s", len(self._online))
        self._online.clear()
        self._notify_listeners()

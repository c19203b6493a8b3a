from __future__ import annotations

import logging

from chat_sync.core.logging import configure_logging
from chat_sync.core.settings import Settings, get_settings
from chat_sync.realtime import ConnectionManager, EventBus, PresenceTracker, TypingRegistry
from chat_sync.services.chat_api import ChatApi
from chat_sync.services.notifications import LoggingNotifier, Notifier
from chat_sync.stores.conversation_store import ConversationStore
from chat_sync.stores.message_timeline import MessageTimeline
from chat_sync.sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def create_engine(
    settings: Settings | None = None,
    *,
    notifier: Notifier | None = None,
    configure_logs: bool = False,
) -> SyncEngine:
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(debug=settings.debug)

    logger.debug("Creating sync engine api_base_url=%s ws_url=%s", settings.api_base_url, settings.ws_url)
    api = ChatApi(base_url=settings.api_base_url, timeout_sec=settings.request_timeout_sec)
    connection = ConnectionManager(
        url=settings.ws_url,
        bus=EventBus(),
        handshake_timeout_sec=settings.ws_handshake_timeout_sec,
        heartbeat_sec=settings.ws_heartbeat_sec,
        outgoing_queue_size=settings.ws_outgoing_queue_size,
    )
    return SyncEngine(
        api=api,
        connection=connection,
        conversations=ConversationStore(api, preview_length=settings.conversation_preview_length),
        timeline=MessageTimeline(api),
        presence=PresenceTracker(),
        typing=TypingRegistry(
            ttl_ms=settings.typing_ttl_ms,
            sweep_interval_ms=settings.typing_sweep_interval_ms,
        ),
        notifier=notifier or LoggingNotifier(sound=settings.notification_sound),
        settings=settings,
    )

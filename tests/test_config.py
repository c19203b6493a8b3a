from __future__ import annotations

import logging

from chat_sync.client import create_engine
from chat_sync.core.logging import configure_logging
from chat_sync.core.settings import Settings, get_settings


def test_settings_defaults():
    settings = Settings(_env_file=None)

    assert settings.typing_ttl_ms == 3000
    assert settings.notification_preview_length == 50
    assert settings.conversation_preview_length == 40
    assert settings.user_search_min_length == 2


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("CHAT_SYNC_WS_URL", "wss://chat.example.test/ws")
    monkeypatch.setenv("CHAT_SYNC_TYPING_TTL_MS", "1500")

    settings = get_settings()

    assert settings.ws_url == "wss://chat.example.test/ws"
    assert settings.typing_ttl_ms == 1500
    assert get_settings() is settings


def test_create_engine_wires_components(settings):
    engine = create_engine(settings)

    assert engine.active_conversation is None
    assert engine.conversations == []
    assert engine.total_unread == 0
    assert engine.handle_typing() is False


def test_configure_logging_quiets_transport_loggers():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    transport = logging.getLogger("aiohttp.websocket")
    try:
        configure_logging(debug=False)
        assert root.level == logging.INFO
        assert transport.level == logging.WARNING

        configure_logging(debug=True)
        assert root.level == logging.DEBUG
        assert logging.getLogger("aiohttp.client").level == logging.DEBUG
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)
        for name in ("aiohttp.client", "aiohttp.websocket", "aiohttp.internal"):
            logging.getLogger(name).setLevel(logging.NOTSET)

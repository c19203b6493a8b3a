from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from chat_sync.core.settings import Settings, get_settings


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        typing_ttl_ms=3000,
        notification_title="New Message",
        user_search_min_length=2,
    )


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()

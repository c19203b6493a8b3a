from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CHAT_SYNC_", env_file=".env", env_file_encoding="utf-8", extra="ignore")

    debug: bool = False
    api_base_url: str = "http://localhost:5000/api"
    ws_url: str = "ws://localhost:5000/ws"
    request_timeout_sec: float = 15.0

    ws_handshake_timeout_sec: float = 10.0
    ws_heartbeat_sec: float = 25.0
    ws_outgoing_queue_size: int = 200

    typing_ttl_ms: int = 3000
    typing_sweep_interval_ms: int = 250

    notification_title: str = "New Message"
    notification_preview_length: int = 50
    notification_sound: str = "/notification.mp3"
    conversation_preview_length: int = 40
    user_search_min_length: int = 2


@lru_cache
def get_settings() -> Settings:
    return Settings()

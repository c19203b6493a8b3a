from chat_sync.client import create_engine
from chat_sync.sync.engine import SyncEngine

__all__ = [
    "SyncEngine",
    "create_engine",
]

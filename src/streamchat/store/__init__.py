"""Client-side chat session store with local persistence."""

from .bootstrap import ChatSession, open_session
from .config import ClientSettings
from .persistence import ChatPersistence, decode_state, encode_state
from .relay_client import RelayClient, RelayConfig
from .session_store import ChatTransport, SessionStore, SessionView, Subscription
from .storage import KeyValueStorage, MemoryStorage, SQLiteStorage

__all__ = [
    "ChatPersistence",
    "ChatSession",
    "ChatTransport",
    "ClientSettings",
    "KeyValueStorage",
    "MemoryStorage",
    "RelayClient",
    "RelayConfig",
    "SQLiteStorage",
    "SessionStore",
    "SessionView",
    "Subscription",
    "decode_state",
    "encode_state",
    "open_session",
]

"""Wire storage, relay client, store and persistence together."""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import ClientSettings
from .persistence import ChatPersistence
from .relay_client import RelayClient, RelayConfig
from .session_store import ChatTransport, SessionStore, Subscription
from .storage import KeyValueStorage, SQLiteStorage

logger = logging.getLogger(__name__)


@dataclass
class ChatSession:
    """A ready-to-use store with autosave attached."""

    store: SessionStore
    persistence: ChatPersistence
    storage: KeyValueStorage
    autosave: Subscription
    relay_client: Optional[RelayClient] = None

    async def aclose(self) -> None:
        """Flush state one last time and release resources."""
        self.autosave.cancel()
        self.persistence.save(self.store)
        if self.relay_client is not None:
            await self.relay_client.close()
        self.storage.close()


def open_session(
    settings: Optional[ClientSettings] = None,
    *,
    storage: Optional[KeyValueStorage] = None,
    transport: Optional[ChatTransport] = None,
) -> ChatSession:
    """Build a SessionStore restored from storage and saving on every change.

    Args:
        settings: Client settings (defaults to environment/.env).
        storage: Storage override; defaults to SQLite at ``storage_path``.
        transport: Relay override; defaults to a RelayClient for ``relay_url``.
    """
    settings = settings or ClientSettings()

    if storage is None:
        storage = SQLiteStorage(settings.storage_path)
        logger.info("Using chat storage at %s", settings.storage_path)

    relay_client: Optional[RelayClient] = None
    if transport is None:
        relay_client = RelayClient(RelayConfig.from_settings(settings))
        transport = relay_client

    store = SessionStore(
        transport,
        keep_partial_on_error=settings.keep_partial_on_error,
    )
    persistence = ChatPersistence(storage, key=settings.storage_key)
    persistence.load(store)
    autosave = persistence.attach(store)

    return ChatSession(
        store=store,
        persistence=persistence,
        storage=storage,
        autosave=autosave,
        relay_client=relay_client,
    )

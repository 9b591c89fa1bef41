"""Save and restore session store state through a key-value storage.

All state lives in one JSON record under a fixed key:

    {"state": {"chatHistories": [...], "chatId": "..."}, "version": 0}

Each chat record is validated on its own so one corrupt chat does not cost
the rest of the history.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import PersistenceDecodeError
from ..models import Chat, Message, Role
from .events import StoreEvent
from .session_store import SessionStore, Subscription
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "chat-storage"
STATE_VERSION = 0


def _to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class MessageRecord(BaseModel):
    """Persisted form of a Message."""

    role: Role
    text: str


class ChatRecord(BaseModel):
    """Persisted form of a Chat."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    title: str
    messages: List[MessageRecord] = Field(default_factory=list)
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timezone(cls, value: datetime) -> datetime:
        return _to_utc(value)

    @classmethod
    def from_chat(cls, chat: Chat) -> "ChatRecord":
        return cls(
            id=chat.id,
            title=chat.title,
            messages=[MessageRecord(role=m.role, text=m.text) for m in chat.messages],
            created_at=chat.created_at,
            updated_at=chat.updated_at,
        )

    def to_chat(self) -> Chat:
        return Chat(
            id=self.id,
            title=self.title,
            messages=[Message(role=m.role, text=m.text) for m in self.messages],
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


def encode_state(chats: List[Chat], current_chat_id: str) -> str:
    """Serialize chats (in recency order) and the selection to JSON."""
    histories = [
        ChatRecord.from_chat(chat).model_dump(mode="json", by_alias=True)
        for chat in chats
    ]
    payload = {
        "state": {"chatHistories": histories, "chatId": current_chat_id},
        "version": STATE_VERSION,
    }
    return json.dumps(payload, ensure_ascii=False)


def _decode_chat(index: int, item: Any) -> Chat:
    try:
        return ChatRecord.model_validate(item).to_chat()
    except ValidationError as e:
        raise PersistenceDecodeError(
            f"Invalid chat record at index {index}",
            {"index": index, "errors": e.errors(include_url=False)},
        ) from e


def decode_state(raw: str) -> Tuple[List[Chat], str]:
    """Parse a persisted record.

    Corrupt chat records are skipped with a warning.

    Returns:
        The decoded chats in stored order and the stored selection.

    Raises:
        PersistenceDecodeError: If the record as a whole is unreadable.
    """
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise PersistenceDecodeError(f"Stored chat state is not valid JSON: {e}") from e

    state = payload.get("state") if isinstance(payload, dict) else None
    if not isinstance(state, dict):
        raise PersistenceDecodeError("Stored chat state has no 'state' object")

    histories = state.get("chatHistories") or []
    if not isinstance(histories, list):
        raise PersistenceDecodeError("'chatHistories' is not a list")

    chats: List[Chat] = []
    for index, item in enumerate(histories):
        try:
            chats.append(_decode_chat(index, item))
        except PersistenceDecodeError as e:
            logger.warning("Skipping corrupt chat record: %s", e.message)

    chat_id = state.get("chatId")
    return chats, chat_id if isinstance(chat_id, str) else ""


class ChatPersistence:
    """Bridges a SessionStore and a KeyValueStorage."""

    def __init__(self, storage: KeyValueStorage, key: str = DEFAULT_STORAGE_KEY):
        self.storage = storage
        self.key = key

    def encode(self, store: SessionStore) -> str:
        return encode_state(store.chats, store.current_chat_id)

    def decode(self, raw: str) -> Tuple[List[Chat], str]:
        return decode_state(raw)

    def load(self, store: SessionStore) -> bool:
        """Restore ``store`` from storage.

        Returns:
            True if a stored record was found and applied. An unreadable
            record leaves the store untouched and returns False.
        """
        raw: Optional[str] = self.storage.get(self.key)
        if raw is None:
            logger.debug("No stored chat state under %r", self.key)
            return False
        try:
            chats, current_chat_id = self.decode(raw)
        except PersistenceDecodeError as e:
            logger.warning("Ignoring stored chat state: %s", e.message)
            return False

        store.restore(chats, current_chat_id)
        logger.info("Loaded %s chats from storage", store.total_chats)
        return True

    def save(self, store: SessionStore) -> bool:
        """Write the store's chats and selection.

        Best-effort: storage failures are logged, not raised.

        Returns:
            True if the write succeeded.
        """
        try:
            self.storage.set(self.key, self.encode(store))
        except (sqlite3.Error, OSError) as e:
            logger.warning("Failed to persist chat state: %s", e)
            return False
        return True

    def attach(self, store: SessionStore) -> Subscription:
        """Save ``store`` after every mutation of its chats or selection."""

        def on_event(event: StoreEvent) -> None:
            if event.persistent:
                self.save(store)

        return store.subscribe(on_event)

"""Events emitted by the session store after each mutation."""

from dataclasses import dataclass
from typing import ClassVar


@dataclass
class StoreEvent:
    """Base class for all store events.

    ``persistent`` marks events that change ``chats`` or the current chat
    selection and therefore need flushing to storage.
    """

    persistent: ClassVar[bool] = True


@dataclass
class ChatCreated(StoreEvent):
    """A new chat was created and selected."""
    chat_id: str


@dataclass
class ChatSelected(StoreEvent):
    """The current chat changed."""
    chat_id: str


@dataclass
class ChatDeleted(StoreEvent):
    """A chat was removed; ``current_chat_id`` is the new selection."""
    chat_id: str
    current_chat_id: str


@dataclass
class MessageAdded(StoreEvent):
    """A message was appended to a chat."""
    chat_id: str
    role: str
    text: str


@dataclass
class MessagesReplaced(StoreEvent):
    """A chat's message sequence was replaced wholesale."""
    chat_id: str
    count: int


@dataclass
class ChatRenamed(StoreEvent):
    """A chat title changed."""
    chat_id: str
    title: str


@dataclass
class ChatsCleared(StoreEvent):
    """Every chat was removed."""
    pass


@dataclass
class StateRestored(StoreEvent):
    """The store was repopulated from persisted state."""
    chat_count: int
    current_chat_id: str


@dataclass
class StreamUpdated(StoreEvent):
    """The streaming buffer grew by one fragment."""
    persistent: ClassVar[bool] = False
    buffer: str


@dataclass
class SendingChanged(StoreEvent):
    """A send started or finished."""
    persistent: ClassVar[bool] = False
    is_sending: bool

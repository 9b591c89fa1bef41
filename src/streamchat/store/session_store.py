"""Chat session store: chat threads, current selection and the send protocol.

The store is a plain object handed to whoever needs it. Mutations are
synchronous; the only suspension point is ``send_message`` waiting on the
relay. Persistence is not done here: observers registered with ``subscribe``
receive a ``StoreEvent`` after every mutation (see ``ChatPersistence``).
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    AsyncIterator,
    Callable,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Set,
)

from ..errors import ChatNotFoundError
from ..models import Chat, Message, Role, derive_title, new_chat_id, utc_now
from .events import (
    ChatCreated,
    ChatDeleted,
    ChatRenamed,
    ChatSelected,
    ChatsCleared,
    MessageAdded,
    MessagesReplaced,
    SendingChanged,
    StateRestored,
    StoreEvent,
    StreamUpdated,
)

logger = logging.getLogger(__name__)

ERROR_MARKER = "⚠️ Error: "
DEFAULT_ERROR_TEXT = "Could not process request."

Listener = Callable[[StoreEvent], None]


class ChatTransport(Protocol):
    """Anything that can stream a model reply for a conversation."""

    def stream_chat(self, messages: Sequence[Message]) -> AsyncIterator[str]:
        ...


class Subscription:
    """Handle for a store subscription."""

    def __init__(self, cancel_fn: Callable[[], None]) -> None:
        self._cancel = cancel_fn

    def cancel(self) -> None:
        self._cancel()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *args) -> None:
        self.cancel()


@dataclass(frozen=True)
class SessionView:
    """Read-only snapshot of what a chat UI renders."""

    current_chat: Optional[Chat]
    chat_id: str
    chats: List[Chat] = field(default_factory=list)
    is_sending: bool = False
    streaming_buffer: str = ""

    @property
    def has_active_chat(self) -> bool:
        return bool(self.chat_id) and self.current_chat is not None

    @property
    def total_chats(self) -> int:
        return len(self.chats)


class SessionStore:
    """Owns all chat state and orchestrates sending messages.

    Invariants:
    - ``current_chat_id`` is empty or names a chat in ``chats``
    - ``streaming_buffer`` is empty unless ``is_sending``
    - chat ids are never reused for the lifetime of the store
    """

    def __init__(
        self,
        transport: ChatTransport,
        *,
        keep_partial_on_error: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the store.

        Args:
            transport: Relay used by ``send_message``.
            keep_partial_on_error: On a failed send, prepend the text received
                so far to the error message instead of dropping it.
            clock: UTC timestamp factory (defaults to ``utc_now``).
        """
        self._transport = transport
        self._keep_partial_on_error = keep_partial_on_error
        self._clock = clock or utc_now
        self._chats: "OrderedDict[str, Chat]" = OrderedDict()
        self._current_chat_id = ""
        self._streaming_buffer = ""
        self._is_sending = False
        self._issued_ids: Set[str] = set()
        self._listeners: List[Listener] = []

    # =========================================================================
    # Read access
    # =========================================================================

    @property
    def current_chat_id(self) -> str:
        return self._current_chat_id

    @property
    def current_chat(self) -> Optional[Chat]:
        return self._chats.get(self._current_chat_id)

    @property
    def chats(self) -> List[Chat]:
        """Chats, most recently created or loaded first."""
        return list(self._chats.values())

    @property
    def streaming_buffer(self) -> str:
        return self._streaming_buffer

    @property
    def is_sending(self) -> bool:
        return self._is_sending

    @property
    def total_chats(self) -> int:
        return len(self._chats)

    @property
    def has_active_chat(self) -> bool:
        return self.current_chat is not None

    def get_chat(self, chat_id: str) -> Optional[Chat]:
        return self._chats.get(chat_id)

    def snapshot(self) -> SessionView:
        return SessionView(
            current_chat=self.current_chat,
            chat_id=self._current_chat_id,
            chats=self.chats,
            is_sending=self._is_sending,
            streaming_buffer=self._streaming_buffer,
        )

    # =========================================================================
    # Observers
    # =========================================================================

    def subscribe(self, listener: Listener) -> Subscription:
        """Call ``listener`` with every event emitted after a mutation.

        Returns:
            A Subscription whose ``cancel()`` detaches the listener.
        """
        self._listeners.append(listener)

        def cancel():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(cancel)

    def _emit(self, event: StoreEvent) -> None:
        # Snapshot so listeners may unsubscribe while being notified.
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Error in store listener for %s", type(event).__name__)

    # =========================================================================
    # Chat operations
    # =========================================================================

    def _next_chat_id(self) -> str:
        chat_id = new_chat_id()
        while chat_id in self._issued_ids:
            chat_id = new_chat_id()
        self._issued_ids.add(chat_id)
        return chat_id

    def _require_chat(self, chat_id: str) -> Chat:
        chat = self._chats.get(chat_id)
        if chat is None:
            raise ChatNotFoundError(chat_id)
        return chat

    def create_chat(self) -> str:
        """Create an empty chat at the front of the list and select it.

        Returns:
            The new chat's id.
        """
        now = self._clock()
        chat = Chat(id=self._next_chat_id(), created_at=now, updated_at=now)
        self._chats[chat.id] = chat
        self._chats.move_to_end(chat.id, last=False)
        self._current_chat_id = chat.id
        logger.debug("Created chat %s", chat.id)
        self._emit(ChatCreated(chat_id=chat.id))
        return chat.id

    def select_chat(self, chat_id: str) -> bool:
        """Make ``chat_id`` current.

        Unknown ids are ignored.

        Returns:
            True if the selection changed to ``chat_id``.
        """
        if chat_id not in self._chats:
            logger.debug("Ignoring selection of unknown chat %s", chat_id)
            return False
        self._current_chat_id = chat_id
        self._emit(ChatSelected(chat_id=chat_id))
        return True

    def delete_chat(self, chat_id: str) -> bool:
        """Remove a chat, re-selecting the most recent one if it was current.

        Deleting an unknown id is a no-op.

        Returns:
            True if a chat was removed.
        """
        if chat_id not in self._chats:
            return False
        del self._chats[chat_id]
        if self._current_chat_id == chat_id:
            self._current_chat_id = next(iter(self._chats), "")
        self._emit(ChatDeleted(chat_id=chat_id, current_chat_id=self._current_chat_id))
        return True

    def clear_all_chats(self) -> None:
        """Drop every chat and clear the selection."""
        self._chats.clear()
        self._current_chat_id = ""
        self._emit(ChatsCleared())

    def append_message(self, chat_id: str, message: Message) -> None:
        """Append ``message`` to a chat.

        Raises:
            ChatNotFoundError: If ``chat_id`` does not exist.
        """
        chat = self._require_chat(chat_id)
        chat.messages.append(message)
        chat.updated_at = self._clock()
        self._emit(MessageAdded(chat_id=chat_id, role=message.role.value, text=message.text))

    def set_messages(self, chat_id: str, messages: Iterable[Message]) -> None:
        """Replace a chat's messages.

        Raises:
            ChatNotFoundError: If ``chat_id`` does not exist.
        """
        chat = self._require_chat(chat_id)
        chat.messages = list(messages)
        chat.updated_at = self._clock()
        self._emit(MessagesReplaced(chat_id=chat_id, count=len(chat.messages)))

    def rename_chat(self, chat_id: str, title: str) -> None:
        """Overwrite a chat title.

        Raises:
            ChatNotFoundError: If ``chat_id`` does not exist.
        """
        chat = self._require_chat(chat_id)
        chat.title = title
        chat.updated_at = self._clock()
        self._emit(ChatRenamed(chat_id=chat_id, title=title))

    def restore(self, chats: Iterable[Chat], current_chat_id: str = "") -> None:
        """Replace all chats with previously persisted ones.

        Duplicate ids keep their first occurrence; a selection that does not
        name a restored chat is cleared.
        """
        restored: "OrderedDict[str, Chat]" = OrderedDict()
        for chat in chats:
            if chat.id in restored:
                logger.warning("Skipping duplicate chat id %s", chat.id)
                continue
            restored[chat.id] = chat

        self._chats = restored
        self._issued_ids.update(restored)
        self._current_chat_id = current_chat_id if current_chat_id in restored else ""
        self._emit(
            StateRestored(chat_count=len(restored), current_chat_id=self._current_chat_id)
        )

    # =========================================================================
    # Send protocol
    # =========================================================================

    def _set_sending(self, is_sending: bool) -> None:
        self._is_sending = is_sending
        self._emit(SendingChanged(is_sending=is_sending))

    def _error_text(self, exc: Exception) -> str:
        description = str(exc).strip() or DEFAULT_ERROR_TEXT
        text = f"{ERROR_MARKER}{description}"
        if self._keep_partial_on_error and self._streaming_buffer:
            text = f"{self._streaming_buffer}\n\n{text}"
        return text

    async def send_message(self, text: str) -> Optional[Message]:
        """Send a user message and stream the model's reply into the chat.

        Exactly one user message and one model message are appended to the
        current chat (created on demand), whether the relay succeeds or not.
        On failure the model message carries ``ERROR_MARKER`` and the failure
        description.

        Args:
            text: The user's input.

        Returns:
            The committed model message, or None if the call was rejected
            because ``text`` is blank or a send is already in progress.
        """
        if not text.strip() or self._is_sending:
            return None

        chat = self.current_chat
        if chat is None:
            chat = self._require_chat(self.create_chat())
        chat_id = chat.id
        is_first_message = not chat.messages

        self.append_message(chat_id, Message(role=Role.USER, text=text))
        if is_first_message and chat.has_placeholder_title:
            self.rename_chat(chat_id, derive_title(text))

        self._streaming_buffer = ""
        self._set_sending(True)
        try:
            reply = await self._stream_reply(chat_id, list(chat.messages))
            # The chat may have been deleted while the reply streamed in.
            if chat_id in self._chats:
                self.append_message(chat_id, reply)
            else:
                logger.warning("Chat %s was deleted before its reply arrived", chat_id)
        finally:
            self._streaming_buffer = ""
            self._set_sending(False)
        return reply

    async def _stream_reply(self, chat_id: str, history: List[Message]) -> Message:
        """Accumulate the relay's fragments into a model message.

        Any failure becomes an error message instead of propagating.
        """
        try:
            async for fragment in self._transport.stream_chat(history):
                self._streaming_buffer += fragment
                self._emit(StreamUpdated(buffer=self._streaming_buffer))
        except Exception as e:
            logger.exception("Error sending message to chat %s", chat_id)
            return Message(role=Role.MODEL, text=self._error_text(e))
        return Message(role=Role.MODEL, text=self._streaming_buffer)

"""Shared data models for streamchat.

Used by the session store, the persistence codec and the relay client so
that every layer agrees on what a message and a chat look like.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List

PLACEHOLDER_TITLE = "New Chat"
TITLE_MAX_LENGTH = 30
TITLE_ELLIPSIS = "..."


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Message author."""

    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class Message:
    """A single chat message.

    Attributes:
        role: Who wrote the message (user or model)
        text: The message text
    """

    role: Role
    text: str

    def __post_init__(self) -> None:
        # Accept plain strings ("user"/"model") from callers and decoders.
        object.__setattr__(self, "role", Role(self.role))

    def to_dict(self) -> dict:
        return {"role": self.role.value, "text": self.text}


@dataclass
class Chat:
    """A conversation thread.

    The message list is append-only from the store's point of view; messages
    themselves are immutable.
    """

    id: str
    title: str = PLACEHOLDER_TITLE
    messages: List[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def has_placeholder_title(self) -> bool:
        return self.title == PLACEHOLDER_TITLE


def new_chat_id() -> str:
    """Generate a chat id like ``chat_1718000000000_3f9a1c2b7``."""
    return f"chat_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def derive_title(text: str) -> str:
    """Title for a chat from its first user message.

    Texts up to 30 characters are used verbatim; longer texts are cut to
    30 characters and suffixed with an ellipsis.
    """
    if len(text) <= TITLE_MAX_LENGTH:
        return text
    return text[:TITLE_MAX_LENGTH] + TITLE_ELLIPSIS

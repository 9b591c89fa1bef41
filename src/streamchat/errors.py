"""Error types shared by the relay and the session store.

None of these are fatal to the process. The relay turns them into 500
responses, the store turns them into a visible model message or a skipped
persisted record.
"""

from typing import Optional


class StreamChatError(Exception):
    """Base exception for all streamchat errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(StreamChatError):
    """Raised when a required provider credential is missing.

    HTTP: 500 Internal Server Error (before any provider call)
    """

    def __init__(self, setting_name: str):
        message = f"{setting_name} not set in environment variables."
        super().__init__(message, {"setting": setting_name})
        self.setting_name = setting_name


class TransportError(StreamChatError):
    """Raised when the relay or provider call fails or returns non-success."""

    def __init__(self, message: str, status_code: int = 0, body: str = ""):
        details = {"status_code": status_code}
        if body:
            details["body"] = body
        super().__init__(message, details)
        self.status_code = status_code
        self.body = body

    @classmethod
    def from_status(cls, status_code: int, body: str = "") -> "TransportError":
        """Build the error for a non-success HTTP status."""
        message = f"API Error: {status_code}"
        if body.strip():
            message += f" - {body.strip()}"
        return cls(message, status_code=status_code, body=body)


class StreamReadError(StreamChatError):
    """Raised when reading the response body fails after headers arrived."""

    def __init__(self, message: str, received: str = ""):
        super().__init__(message, {"received_chars": len(received)})
        self.received = received


class PersistenceDecodeError(StreamChatError):
    """Raised when a persisted record cannot be decoded."""


class ChatNotFoundError(StreamChatError):
    """Raised when a mutation targets a chat id the store does not hold."""

    def __init__(self, chat_id: str):
        super().__init__(f"Chat not found: {chat_id}", {"chat_id": chat_id})
        self.chat_id = chat_id

"""Client-side settings for the session store."""

from pathlib import Path
from typing import Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..relay.config import PROJECT_ROOT


class ClientSettings(BaseSettings):
    """Session store settings.

    Loads ``STREAMCHAT_*`` environment variables and the project .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="STREAMCHAT_",
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    relay_url: str = "http://localhost:8000"
    relay_timeout: Optional[float] = Field(
        default=None,
        description="Seconds before a relay request gives up; unset waits indefinitely.",
    )
    storage_path: Path = Field(default_factory=lambda: PROJECT_ROOT / "chat-storage.db")
    storage_key: str = "chat-storage"
    keep_partial_on_error: bool = Field(
        default=False,
        description="Keep partially streamed text in the error reply of a failed send.",
    )

    @field_validator("storage_path", mode="before")
    @classmethod
    def normalize_storage_path(cls, value: Union[str, Path]) -> Path:
        path = value if isinstance(value, Path) else Path(value)
        if not path.is_absolute():
            return (PROJECT_ROOT / path).resolve()
        return path

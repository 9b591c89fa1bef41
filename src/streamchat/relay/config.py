"""Relay configuration using Pydantic Settings."""

from pathlib import Path
from typing import List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Relay configuration settings.

    Loads from environment variables and the project .env file.
    """

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Provider (Google Gemini)
    gemini_api_key: Optional[str] = Field(
        default=None,
        description="API key for the Gemini API (env GEMINI_API_KEY).",
    )
    gemini_model: str = "gemini-2.0-flash"

    # Logging
    log_dir: Path = Field(
        default_factory=lambda: PROJECT_ROOT / "logs",
        description="Directory to store relay log files.",
    )
    log_max_bytes: int = Field(
        default=1_048_576,
        description="Maximum log file size before rotation (in bytes).",
    )
    log_retention_days: int = Field(
        default=5,
        ge=0,
        description="Number of days to retain rotated log files.",
    )
    uvicorn_log_level: str = Field(
        default="info",
        description="Log level for uvicorn loggers (e.g., info, warning, error).",
    )

    @field_validator("gemini_api_key", mode="before")
    @classmethod
    def blank_key_is_unset(cls, value: Optional[str]) -> Optional[str]:
        """Treat an empty or whitespace-only key as missing."""
        if value is None or not str(value).strip():
            return None
        return str(value).strip()

    @field_validator("log_dir", mode="before")
    @classmethod
    def normalize_log_dir(cls, value: Union[str, Path]) -> Path:
        """Anchor relative log directories at the project root.

        Args:
            value: The configured log directory.

        Returns:
            An absolute path for the log directory.
        """
        path = value if isinstance(value, Path) else Path(value)
        if not path.is_absolute():
            return (PROJECT_ROOT / path).resolve()
        return path


# Global settings instance
settings = Settings()

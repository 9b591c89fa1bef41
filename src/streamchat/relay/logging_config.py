"""Logging setup for the relay process."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path


DEFAULT_LOG_FILENAME = "relay.log"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Third-party loggers that are chatty at INFO (every provider request).
NOISY_LOGGERS = ("httpx", "httpcore", "google_genai")

ANSI_RESET = "\x1b[0m"
ANSI_COLORS = {
    logging.DEBUG: "\x1b[36m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[35m",
}


def purge_old_logs(log_file: Path, retention_days: int) -> int:
    """Delete rotated siblings of ``log_file`` older than the retention window.

    Returns:
        The number of files removed.
    """
    if retention_days <= 0:
        return 0

    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    removed = 0
    for path in log_file.parent.glob(f"{log_file.name}.*"):
        try:
            mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            if mtime < cutoff:
                path.unlink()
                removed += 1
        except OSError:
            continue
    return removed


class RetentionFileHandler(RotatingFileHandler):
    """Size-rotating file handler that also expires old rotations."""

    def __init__(
        self,
        filename: Path,
        max_bytes: int,
        retention_days: int,
        cleanup_interval_seconds: int = 3600,
    ) -> None:
        super().__init__(
            filename,
            maxBytes=max_bytes,
            backupCount=1000,
            encoding="utf-8",
        )
        self._retention_days = retention_days
        self._cleanup_interval_seconds = cleanup_interval_seconds
        self._last_cleanup_ts = 0.0

    def emit(self, record: logging.LogRecord) -> None:
        now = time.time()
        if now - self._last_cleanup_ts >= self._cleanup_interval_seconds:
            self._last_cleanup_ts = now
            purge_old_logs(Path(self.baseFilename), self._retention_days)
        super().emit(record)


class ColorFormatter(logging.Formatter):
    """Formatter that colours the level name for terminals."""

    def __init__(self, fmt: str, use_color: bool = True) -> None:
        super().__init__(fmt)
        self._use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        color = ANSI_COLORS.get(record.levelno) if self._use_color else None
        if not color:
            return super().format(record)
        original_levelname = record.levelname
        record.levelname = f"{color}{record.levelname}{ANSI_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname


def configure_logging(
    log_dir: Path,
    log_max_bytes: int,
    log_retention_days: int,
    debug: bool,
    uvicorn_log_level: str = "info",
) -> Path:
    """Send relay logs to a rotating file and to stdout.

    Args:
        log_dir: Directory to store log files.
        log_max_bytes: Maximum size of a log file before rotation.
        log_retention_days: Days to keep rotated log files.
        debug: Whether to enable debug-level logging.
        uvicorn_log_level: Log level for uvicorn loggers (default: info).

    Returns:
        The path to the active log file.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / DEFAULT_LOG_FILENAME
    log_level = logging.DEBUG if debug else logging.INFO

    file_handler = RetentionFileHandler(
        filename=log_file,
        max_bytes=log_max_bytes,
        retention_days=log_retention_days,
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    file_handler.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    is_tty = getattr(stream_handler.stream, "isatty", lambda: False)()
    stream_handler.setFormatter(ColorFormatter(LOG_FORMAT, use_color=is_tty))
    stream_handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(file_handler)
    root_logger.addHandler(stream_handler)

    dependency_level = logging.INFO if debug else logging.WARNING
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(dependency_level)

    uvi_level = getattr(logging, uvicorn_log_level.upper(), logging.INFO)
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(logger_name)
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(uvi_level)

    removed = purge_old_logs(log_file, log_retention_days)
    if removed:
        logging.getLogger(__name__).info(
            "Purged %s old log files from %s", removed, log_dir
        )

    return log_file

"""Structured JSON logging for ScoutFlow.

Console output is short and human-readable; the rotating file log is one
JSON object per line so step-processing runs can be audited later.

Context fields (prospect_id, execution_id, sequence_id, ...) travel in
``extra={"context": {...}}``:

    from scoutflow.core.logging import get_logger, setup_logging

    setup_logging()  # once, at startup
    logger = get_logger(__name__)

    logger.info("Step sent", extra={"context": {"execution_id": 42}})
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

ROOT_LOGGER_NAME = "scoutflow"


class JSONFormatter(logging.Formatter):
    """Format log records as JSON for file output."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable format for console output."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%H:%M:%S")
        message = record.getMessage()

        context = getattr(record, "context", None)
        if context:
            message += " [" + ", ".join(f"{k}={v}" for k, v in context.items()) + "]"

        return f"{timestamp} {record.levelname[:4]:4s} {record.name}: {message}"


_logging_initialized = False


def setup_logging(
    log_dir: Optional[Path] = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """Initialize logging system.

    Call once at application startup. Later calls are no-ops.

    Args:
        log_dir: Directory for log files. Defaults to ~/.scoutflow/logs
        console_level: Minimum level for console output (default: INFO)
        file_level: Minimum level for file output (default: DEBUG)
    """
    global _logging_initialized

    if _logging_initialized:
        return

    if log_dir is None:
        log_dir = Path.home() / ".scoutflow" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ConsoleFormatter())
    root_logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        log_dir / "scoutflow.log",
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(file_handler)

    _logging_initialized = True
    root_logger.info("Logging initialized", extra={"context": {"log_dir": str(log_dir)}})


def reset_logging() -> None:
    """Detach all handlers so setup_logging can run again.

    Used primarily for testing.
    """
    global _logging_initialized

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    _logging_initialized = False


def get_logger(name: str) -> logging.Logger:
    """Get logger for module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger under the ``scoutflow`` hierarchy
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")

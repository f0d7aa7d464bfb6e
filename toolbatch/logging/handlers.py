"""
Custom Log Handlers for toolbatch.

JSONL rotating file handler for structured log output.
"""

import json
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path


class JSONLRotatingHandler(RotatingFileHandler):
    """
    Rotating file handler that writes one JSON object per line.

    Messages that are already JSON (entries serialized with .to_json())
    are written as-is; anything else is wrapped with timestamp and level.
    """

    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = 10_000_000,  # 10MB
        backup_count: int = 5,
    ):
        """
        Open the log file, creating its directory if needed.

        Args:
            filename: Path to the JSONL file
            max_bytes: Size at which the file is rotated
            backup_count: Rotated files to keep
        """
        filepath = Path(filename)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        super().__init__(
            str(filepath),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )

    def emit(self, record: logging.LogRecord) -> None:
        """
        Write a record as one JSON line, rotating first when the file is full.

        Job, batch and permission entries arrive pre-serialized; plain text
        from other callers is wrapped in an object with timestamp, level and
        logger name.
        """
        try:
            msg = self.format(record)

            try:
                data = json.loads(msg)
            except json.JSONDecodeError:
                data = {
                    "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                    "level": record.levelname,
                    "message": msg,
                    "logger": record.name,
                }

            # Overriding emit() skips RotatingFileHandler's rollover check
            if self.shouldRollover(record):
                self.doRollover()
            self.stream.write(json.dumps(data, default=str) + "\n")
            self.flush()

        except Exception:
            self.handleError(record)


class MessageOnlyFormatter(logging.Formatter):
    """
    Formatter that returns the message untouched.

    Entries are serialized by their own to_json(), so no prefix is added.
    """

    def format(self, record: logging.LogRecord) -> str:
        return record.getMessage()


def create_jsonl_logger(
    name: str,
    filepath: Path,
    level: str = "INFO",
    max_bytes: int = 10_000_000,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Create a logger configured for JSONL output.

    Args:
        name: Logger name
        filepath: Path to log file
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        max_bytes: Max file size before rotation
        backup_count: Number of backup files

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Re-creating a logger (configure() in tests) must not leak open files
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    handler = JSONLRotatingHandler(
        filepath,
        max_bytes=max_bytes,
        backup_count=backup_count,
    )
    handler.setFormatter(MessageOnlyFormatter())
    logger.addHandler(handler)

    # Keep structured entries out of the root logger
    logger.propagate = False

    return logger

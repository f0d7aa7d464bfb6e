"""
toolbatch Logging System.

Structured JSONL logging for:
- Job events (dispatch, completion, failure, ignored re-entrant completions)
- Batch lifecycle (start, finish, abort, termination)
- Permission gate decisions

Usage:
    from toolbatch.logging import JobLogEntry, job_logger, now_iso

    entry = JobLogEntry(timestamp=now_iso(), batch_id="3f2a9c1e", key="0", event="dispatched")
    job_logger.info(entry.to_json())

Logs are written to ~/.toolbatch/logs/:
    - jobs.jsonl
    - batches.jsonl
    - permissions.jsonl
"""

import logging
import threading
from typing import Any

from .config import LogConfig, get_config, set_config
from .entries import BatchLogEntry, JobLogEntry, PermissionLogEntry, now_iso
from .handlers import create_jsonl_logger

# Created on first use so importing toolbatch never touches the filesystem
_loggers: dict[str, logging.Logger] = {}
_init_lock = threading.Lock()

_STREAMS = ("job", "batch", "permission")


def _ensure_loggers() -> None:
    """Initialize loggers on first use."""
    if _loggers:
        return

    with _init_lock:
        if _loggers:
            return

        config = get_config()
        paths = {
            "job": (config.job_log_path, config.job_level),
            "batch": (config.batch_log_path, config.batch_level),
            "permission": (config.permission_log_path, config.permission_level),
        }
        for stream in _STREAMS:
            path, level = paths[stream]
            _loggers[stream] = create_jsonl_logger(
                f"toolbatch.{stream}",
                path,
                level=level,
                max_bytes=config.max_file_size_bytes,
                backup_count=config.backup_count,
            )


def configure(config: LogConfig) -> None:
    """Switch to a new log config, re-creating loggers on next use."""
    with _init_lock:
        set_config(config)
        for logger in _loggers.values():
            for handler in list(logger.handlers):
                handler.close()
            logger.handlers.clear()
        _loggers.clear()


class _LazyLogger:
    """Lazy wrapper that initializes the actual logger on first use."""

    def __init__(self, name: str):
        self._name = name

    def _get_logger(self) -> logging.Logger:
        _ensure_loggers()
        return _loggers[self._name]

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().error(msg, *args, **kwargs)


job_logger = _LazyLogger("job")
batch_logger = _LazyLogger("batch")
permission_logger = _LazyLogger("permission")


__all__ = [
    # Loggers
    "job_logger",
    "batch_logger",
    "permission_logger",
    # Log entries
    "JobLogEntry",
    "BatchLogEntry",
    "PermissionLogEntry",
    # Utilities
    "now_iso",
    "configure",
    # Config
    "LogConfig",
    "get_config",
    "set_config",
]

"""
Logging Configuration for toolbatch.

Defines paths, rotation settings and log levels.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class LogConfig:
    """Configuration for the toolbatch logging system."""

    # Paths
    log_dir: Path = field(default_factory=lambda: Path.home() / ".toolbatch" / "logs")

    # File settings
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5

    # Log levels: DEBUG, INFO, WARNING, ERROR
    job_level: str = "INFO"
    batch_level: str = "INFO"
    permission_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "LogConfig":
        """Load config from environment variables with defaults."""
        config = cls()

        if level := os.environ.get("TOOLBATCH_LOG_LEVEL"):
            config.job_level = level
            config.batch_level = level
            config.permission_level = level

        if log_dir := os.environ.get("TOOLBATCH_LOG_DIR"):
            config.log_dir = Path(log_dir)

        # Max file size in MB
        if max_size := os.environ.get("TOOLBATCH_LOG_MAX_SIZE_MB"):
            try:
                config.max_file_size_bytes = int(max_size) * 1024 * 1024
            except ValueError:
                pass

        return config

    def ensure_log_dir(self) -> None:
        """Create log directory if it doesn't exist."""
        self.log_dir.mkdir(parents=True, exist_ok=True)

    @property
    def job_log_path(self) -> Path:
        """Path to per-job event log."""
        return self.log_dir / "jobs.jsonl"

    @property
    def batch_log_path(self) -> Path:
        """Path to batch lifecycle log."""
        return self.log_dir / "batches.jsonl"

    @property
    def permission_log_path(self) -> Path:
        """Path to permission decision log."""
        return self.log_dir / "permissions.jsonl"


_config: LogConfig | None = None


def get_config() -> LogConfig:
    """Get the global log config, initializing from env if needed."""
    global _config
    if _config is None:
        _config = LogConfig.from_env()
        _config.ensure_log_dir()
    return _config


def set_config(config: LogConfig) -> None:
    """Set a custom log config (useful for testing)."""
    global _config
    _config = config
    _config.ensure_log_dir()

"""
Log Entry Data Structures for toolbatch.

Structured entries for job events, batch lifecycle events and
permission decisions.
"""

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any


@dataclass
class JobLogEntry:
    """Log entry for a single job event."""

    timestamp: str  # ISO 8601
    batch_id: str
    key: str
    event: str  # "dispatched", "completed", "failed", "ignored", "cancelled"

    tool: str = ""
    duration_ms: int = 0

    # Error (if any)
    error: str | None = None
    error_type: str | None = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class BatchLogEntry:
    """Log entry for batch lifecycle events."""

    timestamp: str
    batch_id: str
    event: str  # "started", "finished", "aborted", "terminated"

    mode: str = "parallel"  # "parallel" or "serial"
    size: int = 0

    # Populated when the batch finalises
    completed: int = 0
    in_flight: int = 0
    failed_key: str | None = None
    error: str | None = None
    error_type: str | None = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BatchLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class PermissionLogEntry:
    """Log entry for a permission gate decision."""

    timestamp: str
    key: str
    tool: str
    decision: str  # "accept" or "reject"
    source: str  # "config", "bypass", "user_permanent", "user_temporary", "user_reject", "user_abort"
    user_modified: bool = False

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PermissionLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def now_iso() -> str:
    """Get current time as ISO 8601 string."""
    return datetime.now().isoformat()

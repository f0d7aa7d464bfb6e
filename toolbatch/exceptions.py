"""
toolbatch - Exception Hierarchy

All toolbatch-specific exceptions inherit from ToolBatchError.
"""

from typing import Any


class ToolBatchError(Exception):
    """Base exception for all toolbatch errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Configuration Errors
class ConfigError(ToolBatchError):
    """Raised when configuration is invalid or missing."""

    pass


class BatchFileError(ConfigError):
    """Raised when a batch file cannot be read or parsed."""

    pass


# Queue Errors
class QueueError(ToolBatchError):
    """Base exception for job queue errors."""

    pass


class StateTransitionError(QueueError):
    """Raised when a job moves to a state it cannot reach from its current one."""

    def __init__(self, message: str, from_state: str, to_state: str):
        super().__init__(message, {"from_state": from_state, "to_state": to_state})
        self.from_state = from_state
        self.to_state = to_state


class JobError(QueueError):
    """
    Base exception for a failure of a single job.

    `key` identifies the interaction entry and `batch_id` the run it belongs
    to. `partial_results` is filled in by run_jobs() with the results
    collected when the error surfaced.
    """

    def __init__(
        self,
        message: str,
        key: Any = None,
        details: dict[str, Any] | None = None,
        batch_id: str | None = None,
    ):
        super().__init__(message, {"key": key, **(details or {})})
        self.key = key
        self.batch_id = batch_id
        self.partial_results: dict[Any, Any] = {}


class JobFailedError(JobError):
    """Raised when a processor fails; `cause` is the error it raised."""

    def __init__(self, message: str, key: Any, cause: BaseException, batch_id: str | None = None):
        super().__init__(message, key, {"error_type": type(cause).__name__}, batch_id)
        self.cause = cause


class JobCancelledError(JobError):
    """Raised when a job's task was cancelled before it produced a result."""

    pass


# Permission Errors
class ToolPermissionError(ToolBatchError):
    """Base exception for permission gate errors."""

    pass


class PermissionDeniedError(ToolPermissionError):
    """Raised when a tool use is rejected by a rule or by the user."""

    def __init__(self, message: str, tool: str, source: str):
        super().__init__(message, {"tool": tool, "source": source})
        self.tool = tool
        self.source = source


class InvalidRuleError(ToolPermissionError):
    """Raised when a permission rule string cannot be parsed."""

    pass


# Tool Errors
class ToolError(ToolBatchError):
    """Base exception for tool execution errors."""

    pass


class UnknownToolError(ToolError):
    """Raised when an entry names a tool that is not registered."""

    pass


class ToolExecutionError(ToolError):
    """Raised when a tool runs but fails."""

    def __init__(self, message: str, exit_code: int | None = None, stderr: str | None = None):
        super().__init__(message, {"exit_code": exit_code, "stderr": stderr} if exit_code is not None else None)
        self.exit_code = exit_code
        self.stderr = stderr


class ToolTimeoutError(ToolError):
    """Raised when a tool exceeds its timeout."""

    def __init__(self, message: str, timeout_seconds: float):
        super().__init__(message, {"timeout_seconds": timeout_seconds})
        self.timeout_seconds = timeout_seconds

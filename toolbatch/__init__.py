"""
toolbatch - permission-gated job queue for tool invocations.

Runs a batch of interaction entries concurrently, tracks each job by key,
stops reporting at the first error and aggregates results.
"""

__version__ = "0.1.0"

from toolbatch.exceptions import (
    ConfigError,
    JobError,
    JobFailedError,
    PermissionDeniedError,
    QueueError,
    ToolBatchError,
)
from toolbatch.queue import JobState, run, run_jobs, run_serial, terminate

__all__ = [
    "__version__",
    "ToolBatchError",
    "ConfigError",
    "QueueError",
    "JobError",
    "JobFailedError",
    "PermissionDeniedError",
    "JobState",
    "run",
    "run_serial",
    "run_jobs",
    "terminate",
]

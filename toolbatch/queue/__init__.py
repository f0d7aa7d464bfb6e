"""
Job queue for interaction entries.

- state.py: JobState, JobHandle and the per-key status machine
- dispatcher.py: starting one entry and recording its completion
- driver.py: parallel and serial runs, termination, awaitable facade
"""

from toolbatch.queue.dispatcher import complete_job, dispatch, log_abort
from toolbatch.queue.driver import bind_continuation, run, run_jobs, run_serial, terminate
from toolbatch.queue.state import VALID_TRANSITIONS, JobHandle, JobState, JobStatus

__all__ = [
    "JobState",
    "JobHandle",
    "JobStatus",
    "VALID_TRANSITIONS",
    "dispatch",
    "complete_job",
    "log_abort",
    "run",
    "run_serial",
    "run_jobs",
    "terminate",
    "bind_continuation",
]

"""
toolbatch - Job Dispatcher

Starts the entry at the JobState cursor and wires its completion back
into the state.

Processors are called as processor(config, key, item) and may:
- return a plain value (completes inline)
- raise (fails inline)
- return an awaitable (scheduled as a task; completes when it finishes)
"""

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from toolbatch.exceptions import JobCancelledError, JobError, JobFailedError, QueueError
from toolbatch.logging import JobLogEntry, job_logger, now_iso
from toolbatch.queue.state import JobHandle, JobState, JobStatus, Key

logger = logging.getLogger(__name__)

Processor = Callable[[Any, Key, Any], Any]
ItemCallback = Callable[[BaseException | None, dict[Key, Any]], None]
AbortHook = Callable[[JobState, Key, BaseException], None]


def log_abort(state: JobState, key: Key, error: BaseException) -> None:
    """Default abort hook. Siblings are left running."""
    logger.warning(
        f"Batch {state.batch_id}: job {key!r} failed ({error}); "
        f"{len(state.jobs)} job(s) still in flight"
    )


def dispatch(
    collection: Sequence[Any] | Mapping[Key, Any],
    processor: Processor,
    config: Any,
    state: JobState,
    on_item_complete: ItemCallback,
    on_abort: AbortHook | None = None,
) -> JobHandle:
    """
    Start processing the entry at state.index.

    The handle is registered in state.jobs before the processor runs, so a
    processor that finishes inline still goes through complete_job().

    Args:
        collection: Source entries (sequence or mapping)
        processor: Called as processor(config, key, item)
        config: Opaque value forwarded to every processor call
        state: State of the current run
        on_item_complete: Called as on_item_complete(error, results) after each job
        on_abort: Hook called as on_abort(state, key, error) when a job fails

    Returns:
        The JobHandle registered for the entry
    """
    key = state.current_key()
    item = collection[key]

    handle = JobHandle(key=key, item=item)
    state.jobs[key] = handle
    state.transition(key, JobStatus.IN_FLIGHT)
    _log_job(state, key, "dispatched", item)

    def on_job_done(error: BaseException | None, result: Any) -> None:
        complete_job(state, key, error, result, on_item_complete, on_abort)

    try:
        outcome = processor(config, key, item)
    except Exception as e:
        on_job_done(e, None)
        return handle

    if not inspect.isawaitable(outcome):
        on_job_done(None, outcome)
        return handle

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        if inspect.iscoroutine(outcome):
            outcome.close()
        on_job_done(QueueError("Async processors need a running event loop", {"key": key}), None)
        return handle

    task = asyncio.ensure_future(outcome, loop=loop)
    handle.task = task
    task.add_done_callback(lambda done: _on_task_done(done, key, state.batch_id, on_job_done))
    return handle


def complete_job(
    state: JobState,
    key: Key,
    error: BaseException | None,
    result: Any,
    on_item_complete: ItemCallback,
    on_abort: AbortHook | None = None,
) -> bool:
    """
    Record the outcome of a job and notify the driver.

    A key that is no longer in state.jobs has already been completed (or
    terminated); the call is then ignored.

    Returns:
        True if the outcome was recorded, False if it was ignored
    """
    handle = state.jobs.pop(key, None)
    if handle is None:
        logger.debug(f"Batch {state.batch_id}: ignoring repeated completion for {key!r}")
        _log_job(state, key, "ignored")
        return False

    if error is not None:
        error = as_job_error(key, error, state.batch_id)
        state.errors[key] = error
        state.transition(key, JobStatus.FAILED)
        _log_job(state, key, "failed", handle.item, handle.duration_ms, error)
        _run_abort_hook(on_abort or log_abort, state, key, error)
    else:
        state.results[key] = result
        state.transition(key, JobStatus.SUCCEEDED)
        _log_job(state, key, "completed", handle.item, handle.duration_ms)

    on_item_complete(error, state.results)
    return True


def as_job_error(key: Key, error: BaseException, batch_id: str | None = None) -> JobError:
    """
    Wrap a processor error so it carries the key of the failing entry.

    A JobError passes through only if it has no key yet or was raised for
    this key in this run. A JobError from another run (a processor that
    awaited a nested batch) is wrapped like any other error, so the failure
    is reported under the outer entry's key.
    """
    if isinstance(error, JobError):
        if error.key is None:
            error.key = key
            error.details["key"] = key
            error.batch_id = batch_id
            return error
        if error.key == key and error.batch_id == batch_id:
            return error

    reason = getattr(error, "message", None) or str(error) or type(error).__name__
    wrapped = JobFailedError(f"Job {key!r} failed: {reason}", key, error, batch_id)
    wrapped.__cause__ = error
    return wrapped


def _on_task_done(
    task: asyncio.Future,
    key: Key,
    batch_id: str,
    on_job_done: Callable[[BaseException | None, Any], None],
) -> None:
    if task.cancelled():
        on_job_done(JobCancelledError(f"Job {key!r} was cancelled", key, batch_id=batch_id), None)
        return

    error = task.exception()
    on_job_done(error, None if error is not None else task.result())


def _run_abort_hook(hook: AbortHook, state: JobState, key: Key, error: BaseException) -> None:
    try:
        hook(state, key, error)
    except Exception:
        logger.exception(f"Abort hook raised for job {key!r} in batch {state.batch_id}")


def tool_name(item: Any) -> str:
    """Best-effort tool name of an entry, for log records."""
    if isinstance(item, Mapping):
        name = item.get("tool", "")
    else:
        name = getattr(item, "tool", "")
    return name if isinstance(name, str) else ""


def _log_job(
    state: JobState,
    key: Key,
    event: str,
    item: Any = None,
    duration_ms: int = 0,
    error: BaseException | None = None,
) -> None:
    entry = JobLogEntry(
        timestamp=now_iso(),
        batch_id=state.batch_id,
        key=str(key),
        event=event,
        tool=tool_name(item),
        duration_ms=duration_ms,
        error=str(error) if error is not None else None,
        error_type=type(error).__name__ if error is not None else None,
    )
    if error is not None:
        job_logger.error(entry.to_json())
    else:
        job_logger.info(entry.to_json())

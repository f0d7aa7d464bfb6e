"""
toolbatch - Queue Driver

Runs a collection of interaction entries through a processor.

run() fans out every entry at once and fans in on "first error or all
complete". run_serial() starts each entry only after the previous one has
finished. Both return a continuation that terminates the run early.
run_jobs() is the awaitable form of both.
"""

import asyncio
import functools
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from toolbatch.exceptions import JobError
from toolbatch.logging import BatchLogEntry, batch_logger, now_iso
from toolbatch.queue.dispatcher import AbortHook, Processor, dispatch
from toolbatch.queue.state import JobState, JobStatus, Key

logger = logging.getLogger(__name__)

FinalCallback = Callable[[BaseException | None, dict[Key, Any]], None]
Continuation = Callable[[], bool]


def run(
    collection: Sequence[Any] | Mapping[Key, Any],
    processor: Processor,
    config: Any,
    final_callback: FinalCallback,
    *,
    on_abort: AbortHook | None = None,
) -> Continuation:
    """
    Dispatch every entry and report once, on the first error or when all jobs are done.

    The dispatch loop is synchronous and starts all entries without waiting.
    final_callback(error, results) fires exactly once: with the first error
    as soon as it is reported, or with (None, results) once no job is in
    flight and every entry has been dispatched. Jobs still running after an
    error are not cancelled, but their outcomes are no longer reported.

    Args:
        collection: Sequence (keys are indices) or mapping of entries
        processor: Called as processor(config, key, item)
        config: Opaque value forwarded to every processor call
        final_callback: Called as final_callback(error, results)
        on_abort: Hook called when any job fails

    Returns:
        Continuation that terminates the run (see terminate())
    """
    state = JobState.from_collection(collection)
    _log_batch(state, "started", "parallel")

    def on_item_complete(error: BaseException | None, results: dict[Key, Any]) -> None:
        if state.finalized:
            return
        if error is not None:
            state.stop_dispatch()
            _finalize(state, final_callback, error, "parallel")
        elif not state.jobs and not state.dispatching:
            _finalize(state, final_callback, None, "parallel")

    state.dispatching = True
    try:
        while state.index < state.size:
            dispatch(collection, processor, config, state, on_item_complete, on_abort)
            if not state.finalized:
                state.index += 1
    finally:
        state.dispatching = False

    # Inline completions during the loop defer the success check to here
    if not state.finalized and not state.jobs:
        _finalize(state, final_callback, None, "parallel")

    return bind_continuation(state, final_callback)


def run_serial(
    collection: Sequence[Any] | Mapping[Key, Any],
    processor: Processor,
    config: Any,
    final_callback: FinalCallback,
    *,
    sort_key: Callable[[Any], Any] | None = None,
    reverse: bool = False,
    on_abort: AbortHook | None = None,
) -> Continuation:
    """
    Process entries one at a time, in key order.

    Same reporting contract as run(). With sort_key, entries are processed
    in the order of sort_key(item) instead (stable, optionally reversed);
    results stay keyed by the original keys.

    Returns:
        Continuation that terminates the run (see terminate())
    """
    state = JobState.from_collection(collection)
    if sort_key is not None:
        keys = state.keyed_list if state.keyed_list is not None else list(range(state.size))
        state.keyed_list = sorted(keys, key=lambda k: sort_key(collection[k]), reverse=reverse)
    _log_batch(state, "started", "serial")

    def on_item_complete(error: BaseException | None, results: dict[Key, Any]) -> None:
        if state.finalized:
            return
        if error is not None:
            state.stop_dispatch()
            _finalize(state, final_callback, error, "serial")
            return
        state.index += 1
        if not state.dispatching:
            start_next()

    def start_next() -> None:
        # Inline completions advance the cursor; this loop keeps the stack flat
        state.dispatching = True
        try:
            while not state.finalized and state.index < state.size and not state.jobs:
                before = state.index
                dispatch(collection, processor, config, state, on_item_complete, on_abort)
                if state.index == before:
                    # Asynchronous job; the next entry starts from its completion
                    return
        finally:
            state.dispatching = False
        if not state.finalized and state.exhausted and not state.jobs:
            _finalize(state, final_callback, None, "serial")

    start_next()
    return bind_continuation(state, final_callback)


def terminate(state: JobState, final_callback: FinalCallback) -> bool:
    """
    Stop a run early.

    Does nothing if the run already reported or has no job in flight.
    Otherwise no further entries are started, every in-flight job is
    cancelled, and final_callback(None, results) reports what finished.

    Returns:
        True if the run was terminated by this call
    """
    if state.finalized or not state.jobs:
        return False

    state.stop_dispatch()
    for key, handle in list(state.jobs.items()):
        del state.jobs[key]
        state.transition(key, JobStatus.CANCELLED)
        handle.cancel()

    logger.info(f"Batch {state.batch_id} terminated with {len(state.results)} result(s)")
    _finalize(state, final_callback, None, event="terminated")
    return True


def bind_continuation(state: JobState, final_callback: FinalCallback) -> Continuation:
    """Bind terminate() to a run's state and final callback."""
    return functools.partial(terminate, state, final_callback)


async def run_jobs(
    collection: Sequence[Any] | Mapping[Key, Any],
    processor: Processor,
    config: Any = None,
    *,
    serial: bool = False,
    on_abort: AbortHook | None = None,
) -> dict[Key, Any]:
    """
    Run a batch and wait for its outcome.

    Args:
        collection: Sequence or mapping of entries
        processor: Called as processor(config, key, item); may be async
        config: Opaque value forwarded to every processor call
        serial: Process entries one at a time instead of all at once
        on_abort: Hook called when any job fails

    Returns:
        Results keyed like the collection

    Raises:
        JobError: The first job failure, with partial_results set to the
            results collected when it surfaced
    """
    loop = asyncio.get_running_loop()
    outcome: asyncio.Future[dict[Key, Any]] = loop.create_future()

    def finish(error: BaseException | None, results: dict[Key, Any]) -> None:
        if outcome.done():
            return
        if error is not None:
            if isinstance(error, JobError):
                error.partial_results = dict(results)
            outcome.set_exception(error)
        else:
            outcome.set_result(dict(results))

    driver = run_serial if serial else run
    stop = driver(collection, processor, config, finish, on_abort=on_abort)

    try:
        return await outcome
    except asyncio.CancelledError:
        stop()
        raise


def _finalize(
    state: JobState,
    final_callback: FinalCallback,
    error: BaseException | None,
    mode: str = "",
    event: str | None = None,
) -> None:
    state.finalized = True
    if event is None:
        event = "aborted" if error is not None else "finished"
    _log_batch(state, event, mode, error)
    final_callback(error, state.results)


def _log_batch(state: JobState, event: str, mode: str, error: BaseException | None = None) -> None:
    entry = BatchLogEntry(
        timestamp=now_iso(),
        batch_id=state.batch_id,
        event=event,
        mode=mode,
        size=state.size,
        completed=len(state.results),
        in_flight=len(state.jobs),
        failed_key=str(error.key) if isinstance(error, JobError) else None,
        error=str(error) if error is not None else None,
        error_type=type(error).__name__ if error is not None else None,
    )
    if error is not None:
        batch_logger.error(entry.to_json())
    else:
        batch_logger.info(entry.to_json())

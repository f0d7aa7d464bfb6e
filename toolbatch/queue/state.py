"""
toolbatch - Job State

Per-run bookkeeping for the job queue: the iteration cursor, the jobs
currently in flight, the results collected so far, and a per-key status
state machine.
"""

import asyncio
import time
import uuid
from collections.abc import Hashable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

from toolbatch.exceptions import QueueError, StateTransitionError

Key = Hashable


class JobStatus(Enum):
    """
    Lifecycle of a single interaction entry.

    State transitions:
    UNSTARTED -> IN_FLIGHT (dispatched)
    IN_FLIGHT -> SUCCEEDED (result recorded)
    IN_FLIGHT -> FAILED (error reported, abort hook fired)
    IN_FLIGHT -> CANCELLED (run terminated while the job was running)
    """

    UNSTARTED = auto()
    IN_FLIGHT = auto()
    SUCCEEDED = auto()
    FAILED = auto()
    CANCELLED = auto()


VALID_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.UNSTARTED: {JobStatus.IN_FLIGHT},
    JobStatus.IN_FLIGHT: {JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.SUCCEEDED: set(),
    JobStatus.FAILED: set(),
    JobStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in VALID_TRANSITIONS.items() if not targets)


@dataclass
class JobHandle:
    """In-flight handle for one interaction entry."""

    key: Key
    item: Any
    task: asyncio.Future | None = None
    started_at: float = field(default_factory=time.monotonic)

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    def cancel(self) -> bool:
        """Cancel the underlying task, if the job has one that is still running."""
        if self.task is not None and not self.task.done():
            return self.task.cancel()
        return False


@dataclass
class JobState:
    """
    Mutable state for a single queue run.

    `index` only moves forward. A key lives in at most one of `jobs` and
    `results`; `results` only receives successful outcomes.
    """

    size: int
    keyed_list: list[Key] | None = None
    index: int = 0
    jobs: dict[Key, JobHandle] = field(default_factory=dict)
    results: dict[Key, Any] = field(default_factory=dict)
    errors: dict[Key, BaseException] = field(default_factory=dict)
    statuses: dict[Key, JobStatus] = field(default_factory=dict)
    batch_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    # True while the fan-out loop is still starting jobs
    dispatching: bool = False
    # True once the final callback has fired
    finalized: bool = False

    @classmethod
    def from_collection(cls, collection: Sequence[Any] | Mapping[Key, Any]) -> "JobState":
        """
        Build a fresh state for a collection of interaction entries.

        Mappings are addressed through their keys in iteration order;
        sequences are addressed by integer index.

        Raises:
            QueueError: If the collection is not a sequence or mapping,
                or is a string
        """
        if isinstance(collection, Mapping):
            keyed_list = list(collection.keys())
            state = cls(size=len(keyed_list), keyed_list=keyed_list)
            keys: list[Key] = keyed_list
        elif isinstance(collection, Sequence) and not isinstance(collection, (str, bytes, bytearray)):
            state = cls(size=len(collection))
            keys = list(range(len(collection)))
        else:
            raise QueueError(
                "Job queue needs a sequence or mapping of entries",
                {"type": type(collection).__name__},
            )

        state.statuses = {key: JobStatus.UNSTARTED for key in keys}
        return state

    def current_key(self) -> Key:
        """Key of the entry at the cursor."""
        if self.keyed_list is not None:
            return self.keyed_list[self.index]
        return self.index

    @property
    def exhausted(self) -> bool:
        """True when every entry has been handed to the dispatcher."""
        return self.index >= self.size

    def stop_dispatch(self) -> None:
        """Move the cursor past the end so no further entries start."""
        self.index = max(self.index, self.size)

    def status_of(self, key: Key) -> JobStatus:
        return self.statuses.get(key, JobStatus.UNSTARTED)

    def transition(self, key: Key, new_status: JobStatus) -> None:
        """
        Move a key to a new status.

        Raises:
            StateTransitionError: If the transition is not valid
        """
        current = self.status_of(key)
        if new_status not in VALID_TRANSITIONS[current]:
            valid_names = ", ".join(s.name for s in VALID_TRANSITIONS[current]) or "none"
            raise StateTransitionError(
                f"Invalid job transition for {key!r}: {current.name} -> {new_status.name}. "
                f"Valid transitions from {current.name}: {valid_names}",
                from_state=current.name,
                to_state=new_status.name,
            )
        self.statuses[key] = new_status

    def count(self, status: JobStatus) -> int:
        return sum(1 for s in self.statuses.values() if s is status)

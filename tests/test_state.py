"""Tests for queue state - JobState construction and the job status machine."""

import asyncio

import pytest

from toolbatch.exceptions import QueueError, StateTransitionError
from toolbatch.queue.state import (
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    JobHandle,
    JobState,
    JobStatus,
)


class TestJobStatus:
    """Tests for JobStatus enum and transitions."""

    def test_all_statuses_have_transitions(self):
        """Every status should have defined transitions."""
        for status in JobStatus:
            assert status in VALID_TRANSITIONS

    def test_terminal_statuses(self):
        """Finished jobs never move again."""
        assert TERMINAL_STATUSES == {JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED}

    def test_unstarted_only_goes_in_flight(self):
        assert VALID_TRANSITIONS[JobStatus.UNSTARTED] == {JobStatus.IN_FLIGHT}


class TestJobStateFromCollection:
    """Tests for JobState.from_collection()."""

    def test_list_is_indexed(self):
        state = JobState.from_collection([10, 20, 30])
        assert state.size == 3
        assert state.keyed_list is None
        assert state.index == 0
        assert state.jobs == {}
        assert state.results == {}
        assert state.current_key() == 0

    def test_mapping_uses_keyed_list(self):
        """Mappings are addressed through their keys in iteration order."""
        state = JobState.from_collection({"b": 1, "a": 2})
        assert state.keyed_list == ["b", "a"]
        assert state.current_key() == "b"
        state.index = 1
        assert state.current_key() == "a"

    def test_all_keys_start_unstarted(self):
        state = JobState.from_collection({"x": 5, "y": 7})
        assert state.status_of("x") is JobStatus.UNSTARTED
        assert state.count(JobStatus.UNSTARTED) == 2

    def test_empty_collection(self):
        state = JobState.from_collection([])
        assert state.size == 0
        assert state.exhausted

    @pytest.mark.parametrize("collection", ["abc", b"abc", 42, None])
    def test_rejects_non_collections(self, collection):
        with pytest.raises(QueueError):
            JobState.from_collection(collection)

    def test_fresh_batch_ids(self):
        """Each run gets its own batch id."""
        assert JobState.from_collection([]).batch_id != JobState.from_collection([]).batch_id


class TestJobStateTransitions:
    """Tests for the per-key status machine."""

    def test_valid_path(self):
        state = JobState.from_collection([1])
        state.transition(0, JobStatus.IN_FLIGHT)
        state.transition(0, JobStatus.SUCCEEDED)
        assert state.status_of(0) is JobStatus.SUCCEEDED

    def test_cannot_complete_unstarted(self):
        state = JobState.from_collection([1])
        with pytest.raises(StateTransitionError) as exc_info:
            state.transition(0, JobStatus.SUCCEEDED)
        assert exc_info.value.from_state == "UNSTARTED"
        assert exc_info.value.to_state == "SUCCEEDED"

    def test_terminal_is_final(self):
        state = JobState.from_collection([1])
        state.transition(0, JobStatus.IN_FLIGHT)
        state.transition(0, JobStatus.FAILED)
        with pytest.raises(StateTransitionError, match="Valid transitions from FAILED: none"):
            state.transition(0, JobStatus.SUCCEEDED)

    def test_stop_dispatch_never_moves_backwards(self):
        state = JobState.from_collection([1, 2, 3])
        state.index = 2
        state.stop_dispatch()
        assert state.index == 3
        state.stop_dispatch()
        assert state.index == 3


class TestJobHandle:
    """Tests for JobHandle."""

    def test_cancel_without_task(self):
        handle = JobHandle(key=0, item="x")
        assert handle.cancel() is False

    def test_duration_is_non_negative(self):
        assert JobHandle(key=0, item="x").duration_ms >= 0

    @pytest.mark.asyncio
    async def test_cancel_running_task(self):
        task = asyncio.ensure_future(asyncio.sleep(10))
        handle = JobHandle(key=0, item="x", task=task)
        assert handle.cancel() is True
        with pytest.raises(asyncio.CancelledError):
            await task
        assert handle.cancel() is False

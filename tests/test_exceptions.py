"""Tests for exception hierarchy."""

import pytest

from toolbatch.exceptions import (
    BatchFileError,
    ConfigError,
    InvalidRuleError,
    JobCancelledError,
    JobError,
    JobFailedError,
    PermissionDeniedError,
    QueueError,
    StateTransitionError,
    ToolBatchError,
    ToolError,
    ToolExecutionError,
    ToolPermissionError,
    ToolTimeoutError,
    UnknownToolError,
)


class TestToolBatchError:
    """Tests for base ToolBatchError."""

    def test_basic_error(self):
        """Test basic error creation."""
        err = ToolBatchError("Something went wrong")
        assert err.message == "Something went wrong"
        assert err.details == {}
        assert str(err) == "Something went wrong"

    def test_error_with_details(self):
        """Test error with details dict."""
        err = ToolBatchError("Error occurred", {"code": 500})
        assert str(err) == "Error occurred | Details: {'code': 500}"


class TestHierarchy:
    """Every toolbatch error can be caught as ToolBatchError."""

    @pytest.mark.parametrize(
        "cls,parent",
        [
            (ConfigError, ToolBatchError),
            (BatchFileError, ConfigError),
            (QueueError, ToolBatchError),
            (StateTransitionError, QueueError),
            (JobError, QueueError),
            (JobFailedError, JobError),
            (JobCancelledError, JobError),
            (ToolPermissionError, ToolBatchError),
            (PermissionDeniedError, ToolPermissionError),
            (InvalidRuleError, ToolPermissionError),
            (ToolError, ToolBatchError),
            (UnknownToolError, ToolError),
            (ToolExecutionError, ToolError),
            (ToolTimeoutError, ToolError),
        ],
    )
    def test_parent(self, cls, parent):
        assert issubclass(cls, parent)


class TestQueueErrors:
    """Tests for job and transition errors."""

    def test_state_transition_error(self):
        err = StateTransitionError("bad move", "UNSTARTED", "SUCCEEDED")
        assert err.from_state == "UNSTARTED"
        assert err.to_state == "SUCCEEDED"
        assert err.details == {"from_state": "UNSTARTED", "to_state": "SUCCEEDED"}

    def test_job_error_carries_key(self):
        err = JobError("failed", key="build")
        assert err.key == "build"
        assert err.details["key"] == "build"
        assert err.partial_results == {}

    def test_job_failed_error_records_cause(self):
        cause = OSError("disk full")
        err = JobFailedError("Job 3 failed: disk full", 3, cause)
        assert err.cause is cause
        assert err.details == {"key": 3, "error_type": "OSError"}

    def test_job_cancelled_error(self):
        err = JobCancelledError("cancelled", key=0)
        assert isinstance(err, JobError)
        assert err.key == 0


class TestToolErrors:
    """Tests for tool and permission errors."""

    def test_permission_denied_error(self):
        err = PermissionDeniedError("no", tool="shell", source="user_reject")
        assert err.tool == "shell"
        assert err.source == "user_reject"
        assert "user_reject" in str(err)

    def test_execution_error_with_exit_code(self):
        err = ToolExecutionError("exited", exit_code=2, stderr="boom")
        assert err.details == {"exit_code": 2, "stderr": "boom"}

    def test_execution_error_without_exit_code(self):
        err = ToolExecutionError("read failed")
        assert err.details == {}
        assert err.exit_code is None

    def test_timeout_error(self):
        err = ToolTimeoutError("too slow", 30.0)
        assert err.timeout_seconds == 30.0
        assert "30.0" in str(err)

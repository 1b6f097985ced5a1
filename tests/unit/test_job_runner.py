"""
Unit tests for the detached JobRunner.
"""
import logging
import threading

import pytest

from rotate_service.jobs import Job, JobResult
from rotate_service.services.job_runner import JobRunner, RunnerBusyError


@pytest.fixture
def job(sample_job_payload) -> Job:
    return Job.from_payload(sample_job_payload)


@pytest.mark.unit
class TestJobRunner:
    """Tests for the bounded JobRunner."""

    def test_submit_runs_workflow(self, mocker, job):
        """Test a submitted job runs through the workflow."""
        workflow = mocker.Mock()
        workflow.run.return_value = JobResult(status="succeeded", url="https://cdn/x.png", attempts=1)
        runner = JobRunner(workflow, max_workers=1, max_pending=2)

        future = runner.submit(job)
        result = future.result(timeout=5)
        runner.shutdown()

        workflow.run.assert_called_once_with(job)
        assert result.url == "https://cdn/x.png"

    def test_rejects_when_pending_limit_reached(self, mocker, job):
        """Test submit raises RunnerBusyError once every slot is taken."""
        release = threading.Event()
        workflow = mocker.Mock()
        workflow.run.side_effect = lambda j: release.wait(5) and JobResult(status="succeeded")
        runner = JobRunner(workflow, max_workers=1, max_pending=2)

        first = runner.submit(job)
        second = runner.submit(job)
        with pytest.raises(RunnerBusyError):
            runner.submit(job)

        release.set()
        first.result(timeout=5)
        second.result(timeout=5)
        runner.shutdown()

    def test_slot_freed_after_completion(self, mocker, job):
        """Test a finished job gives its slot back."""
        workflow = mocker.Mock()
        workflow.run.return_value = JobResult(status="succeeded")
        runner = JobRunner(workflow, max_workers=1, max_pending=1)

        runner.submit(job).result(timeout=5)
        runner.shutdown()
        # every done-callback has run once shutdown returns
        assert runner._slots.acquire(blocking=False)

    def test_failed_result_is_logged(self, mocker, job, caplog):
        """Test a failed result is logged with its kind and attempts."""
        workflow = mocker.Mock()
        workflow.run.return_value = JobResult(status="failed", error="boom", error_kind="fetch", attempts=4)
        runner = JobRunner(workflow, max_workers=1, max_pending=1)

        with caplog.at_level(logging.ERROR, logger="rotate_service.services.job_runner"):
            runner.submit(job)
            runner.shutdown()

        assert "failed (fetch) after 4 attempt(s): boom" in caplog.text

    def test_crash_is_logged_with_traceback(self, mocker, job, caplog):
        """Test an exception from the workflow is logged with its traceback."""
        workflow = mocker.Mock()
        workflow.run.side_effect = KeyError("unexpected")
        runner = JobRunner(workflow, max_workers=1, max_pending=1)

        with caplog.at_level(logging.ERROR, logger="rotate_service.services.job_runner"):
            runner.submit(job)
            runner.shutdown()

        assert "crashed" in caplog.text
        assert "KeyError" in caplog.text

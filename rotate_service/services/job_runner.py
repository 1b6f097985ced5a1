import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from ..jobs import Job, JobResult
from .workflow import RotateAndUpdateWorkflow

logger = logging.getLogger(__name__)


class RunnerBusyError(RuntimeError):
    """Too many jobs are already queued or running."""


class JobRunner:
    """Runs workflow jobs on a fixed-size thread pool, detached from the request.

    At most `max_pending` jobs may be queued or running at once; further
    submissions are refused instead of piling up behind the pool. Outcomes are
    only reported through the log.
    """

    def __init__(self, workflow: RotateAndUpdateWorkflow, max_workers: int = 4, max_pending: int = 32):
        self.workflow = workflow
        self.max_pending = max(max_pending, max_workers)
        self._slots = threading.BoundedSemaphore(self.max_pending)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="rotate-job")

    def submit(self, job: Job) -> Future:
        if not self._slots.acquire(blocking=False):
            raise RunnerBusyError(f"{self.max_pending} jobs already in flight")
        try:
            future = self._executor.submit(self.workflow.run, job)
        except RuntimeError:
            self._slots.release()
            raise
        future.add_done_callback(lambda f: self._on_done(job, f))
        return future

    def _on_done(self, job: Job, future: Future):
        self._slots.release()
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Background job for product %s crashed", job.product_id, exc_info=(type(exc), exc, exc.__traceback__)
            )
            return
        result: JobResult = future.result()
        if result.ok:
            logger.info("Job for product %s succeeded: %s", job.product_id, result.url)
        else:
            logger.error(
                "Job for product %s failed (%s) after %s attempt(s): %s",
                job.product_id, result.error_kind, result.attempts, result.error,
            )

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

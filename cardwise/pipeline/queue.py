"""Persistent invoice job queue and the worker pool that drains it.

One logical queue lives in the ``jobs`` table. Each worker thread owns its
own Repository (and so its own SQLite connection) and claims jobs with an
IMMEDIATE transaction, so a job is handed to exactly one worker and no two
jobs for the same invoice run at once.

A job failing with ExternalServiceError (AI or storage trouble) goes back
in the queue with exponential backoff until it has used max_attempts; its
invoice returns to Processing for the retry. Any other failure is final and
the invoice sits in Error until an operator reprocesses it. Before claiming,
workers fail jobs that have been running longer than stale_after, which
frees the invoice of a worker that died mid-job.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from cardwise.database.models import Invoice, Job, JobStatus
from cardwise.database.repository import Repository
from cardwise.errors import ExternalServiceError

from .invoice import InvoiceProcessingPipeline

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 10.0
DEFAULT_RETRY_DELAY_MAX = 300.0
DEFAULT_STALE_AFTER = 600.0


def _utc_after(seconds: float) -> str:
    return (datetime.now(timezone.utc) + timedelta(seconds=seconds)).isoformat()


class JobQueue:
    """Enqueue/claim/finish operations over the jobs table."""

    def __init__(self, repo: Repository):
        self.repo = repo

    def enqueue(self, invoice_id: str, file_path: str | None) -> Job:
        job = self.repo.insert_job(Job(invoice_id=invoice_id, file_path=file_path))
        logger.info("Queued job %s for invoice %s", job.id, invoice_id)
        return job

    def submit(self, invoice: Invoice) -> Job:
        """Store a new invoice together with its first job."""
        job = Job(invoice_id=invoice.id, file_path=invoice.file_path)
        self.repo.insert_invoice_with_job(invoice, job)
        logger.info("Queued job %s for new invoice %s", job.id, invoice.id)
        return job

    def requeue(self, invoice_id: str, file_path: str | None) -> Job | None:
        """Move an Error invoice to Processing with a fresh job.

        Returns None when the invoice left Error before the write.
        """
        job = Job(invoice_id=invoice_id, file_path=file_path)
        if not self.repo.requeue_invoice(invoice_id, job):
            return None
        logger.info("Queued job %s for invoice %s", job.id, invoice_id)
        return job

    def claim_next(self) -> Job | None:
        return self.repo.claim_next_job()

    def mark_completed(self, job_id: str) -> None:
        self.repo.finish_job(job_id, JobStatus.COMPLETED.value)

    def mark_failed(self, job_id: str, error_message: str) -> None:
        self.repo.finish_job(job_id, JobStatus.FAILED.value, error_message=error_message)

    def retry_later(self, job: Job, error_message: str, delay: float) -> bool:
        return self.repo.retry_job(job.id, job.invoice_id, error_message, _utc_after(delay))

    def fail_stale(self, stale_after: float) -> list[Job]:
        """Fail jobs running for longer than stale_after seconds."""
        jobs = self.repo.fail_stale_jobs(
            _utc_after(-stale_after), f"Job timed out after {stale_after:.0f}s",
        )
        for job in jobs:
            logger.warning("Job %s for invoice %s timed out; marked failed", job.id, job.invoice_id)
        return jobs


@dataclass
class DrainResult:
    """Outcome of draining the queue once."""
    completed: int = 0
    failed: int = 0
    retried: int = 0

    @property
    def total(self) -> int:
        return self.completed + self.failed + self.retried


class WorkerPool:
    """Run queued invoice jobs on background threads.

    Args:
        repo_factory: Opens a fresh Repository; called once per worker.
        pipeline_factory: Builds a pipeline bound to a worker's Repository.
        workers: Number of worker threads.
        poll_interval: Seconds an idle worker sleeps before polling again.
        max_attempts: Runs allowed per job, the first one included.
        retry_delay: Backoff before the first retry; doubles on each one.
        retry_delay_max: Ceiling for the backoff.
        stale_after: Seconds after which a running job counts as abandoned.
    """

    def __init__(
        self,
        repo_factory: Callable[[], Repository],
        pipeline_factory: Callable[[Repository], InvoiceProcessingPipeline],
        workers: int = 2,
        poll_interval: float = 2.0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        retry_delay_max: float = DEFAULT_RETRY_DELAY_MAX,
        stale_after: float = DEFAULT_STALE_AFTER,
    ):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.repo_factory = repo_factory
        self.pipeline_factory = pipeline_factory
        self.workers = workers
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.retry_delay_max = retry_delay_max
        self.stale_after = stale_after
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    # ── Single job ──────────────────────────────────────────

    def backoff(self, attempts: int) -> float:
        """Delay before the retry that follows run number `attempts`."""
        return min(self.retry_delay * 2 ** (attempts - 1), self.retry_delay_max)

    def run_job(self, queue: JobQueue, pipeline: InvoiceProcessingPipeline, job: Job) -> str:
        """Process one claimed job and record its outcome.

        Returns the job's new status: completed, failed, or queued when it
        was put back for a retry.
        """
        try:
            result = pipeline.process(job.invoice_id)
        except ExternalServiceError as e:
            message = str(e) or type(e).__name__
            if job.attempts < self.max_attempts:
                delay = self.backoff(job.attempts)
                if queue.retry_later(job, message, delay):
                    logger.warning(
                        "Job %s for invoice %s failed (attempt %d/%d), retrying in %.0fs: %s",
                        job.id, job.invoice_id, job.attempts, self.max_attempts, delay, e,
                    )
                    return JobStatus.QUEUED.value
            logger.error("Job %s for invoice %s failed: %s", job.id, job.invoice_id, e)
            queue.mark_failed(job.id, message)
            return JobStatus.FAILED.value
        except Exception as e:
            logger.error("Job %s for invoice %s failed: %s", job.id, job.invoice_id, e)
            queue.mark_failed(job.id, str(e) or type(e).__name__)
            return JobStatus.FAILED.value
        queue.mark_completed(job.id)
        logger.info("Job %s finished: invoice %s %s", job.id, job.invoice_id, result.status)
        return JobStatus.COMPLETED.value

    def _claim(self, queue: JobQueue) -> Job | None:
        queue.fail_stale(self.stale_after)
        return queue.claim_next()

    # ── Synchronous drain ───────────────────────────────────

    def run_pending(self, max_jobs: int | None = None) -> DrainResult:
        """Process available jobs on the calling thread until none is left.

        Jobs waiting out a retry backoff are left for a later drain.
        """
        result = DrainResult()
        repo = self.repo_factory()
        try:
            queue = JobQueue(repo)
            pipeline = self.pipeline_factory(repo)
            while max_jobs is None or result.total < max_jobs:
                job = self._claim(queue)
                if job is None:
                    break
                status = self.run_job(queue, pipeline, job)
                if status == JobStatus.COMPLETED.value:
                    result.completed += 1
                elif status == JobStatus.QUEUED.value:
                    result.retried += 1
                else:
                    result.failed += 1
        finally:
            repo.close()
        return result

    # ── Background threads ──────────────────────────────────

    def start(self) -> None:
        self._stop_event.clear()
        for index in range(self.workers):
            thread = threading.Thread(
                target=self._worker_loop, args=(index,),
                name=f"cardwise-worker-{index}", daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        logger.info("Started %d invoice workers", self.workers)

    def stop(self, timeout: float | None = 30.0) -> None:
        """Signal workers to stop and wait for in-flight jobs to finish."""
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Worker %s did not stop within %ss", thread.name, timeout)
        self._threads = []
        logger.info("Invoice workers stopped")

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def _worker_loop(self, index: int) -> None:
        repo = self.repo_factory()
        try:
            queue = JobQueue(repo)
            pipeline = self.pipeline_factory(repo)
            while not self._stop_event.is_set():
                try:
                    job = self._claim(queue)
                except Exception:
                    logger.exception("Worker %d failed to claim a job", index)
                    self._stop_event.wait(self.poll_interval)
                    continue
                if job is None:
                    self._stop_event.wait(self.poll_interval)
                    continue
                self.run_job(queue, pipeline, job)
        finally:
            repo.close()

"""
Worker process for executing jobs.

The worker pops jobs from one queue, executes them, and records each outcome
with exactly one queue transition: delete on success, release on a retry,
bury on a failure.
"""

import asyncio
import logging
import signal
import time
import traceback

from tablequeue.config import get_settings
from tablequeue.constants import SPAN_EXECUTE_JOB, SPAN_POP_JOB
from tablequeue.db import close_db, get_engine, init_db
from tablequeue.exceptions import JobDeserializationError, QueueError, RaceConditionError
from tablequeue.jobs.base import Job
from tablequeue.jobs.registry import registry
from tablequeue.observability.logging import job_context, setup_logging
from tablequeue.observability.metrics import get_metrics, serve_metrics
from tablequeue.observability.tracing import get_tracer, instrument_sqlalchemy, setup_tracing
from tablequeue.queue.table import TableQueue
from tablequeue.types.job import Fail, JobOutcome, Retry, Success

logger = logging.getLogger(__name__)


class Worker:
    """
    Job worker that polls one queue and executes its jobs.

    Features:
    - Claims through ``TableQueue.pop`` (purge runs before each claim)
    - Maps job outcomes onto delete/release/bury
    - Buries jobs whose payload cannot be reconstructed
    - Optional run limit and graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        queue: TableQueue,
        poll_interval: float | None = None,
        max_runs: int | None = None,
        bury_malformed_jobs: bool | None = None,
    ):
        """
        Initialize the worker.

        Args:
            queue: The queue to process.
            poll_interval: Seconds between polls when the queue is empty.
            max_runs: Stop after this many processed jobs (0 = unlimited).
            bury_malformed_jobs: Bury claimed rows whose payload is unusable
                instead of leaving them to recovery.
        """
        settings = get_settings()

        self.queue = queue
        self.poll_interval = (
            settings.worker_poll_interval_seconds if poll_interval is None else poll_interval
        )
        self.max_runs = settings.worker_max_runs if max_runs is None else max_runs
        self.bury_malformed_jobs = (
            settings.worker_bury_malformed_jobs
            if bury_malformed_jobs is None
            else bury_malformed_jobs
        )

        self.runs = 0
        self._running = False
        self._stopped = asyncio.Event()
        self._metrics = get_metrics()

    async def start(self) -> None:
        """Run the polling loop until stopped or the run limit is reached."""
        logger.info("Worker starting", extra={"queue": self.queue.name})

        self._running = True
        self._stopped.clear()

        while self._running:
            try:
                processed = await self._poll_and_execute()
            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"queue": self.queue.name},
                )
                processed = False

            if self.max_runs and self.runs >= self.max_runs:
                logger.info(
                    "Worker reached its run limit",
                    extra={"queue": self.queue.name, "runs": self.runs},
                )
                break

            if not processed:
                await self._sleep()

        self._running = False
        logger.info("Worker stopped", extra={"queue": self.queue.name})

    async def stop(self) -> None:
        """Stop the worker after the current job."""
        logger.info("Worker stopping", extra={"queue": self.queue.name})
        self._running = False
        self._stopped.set()

    async def _sleep(self) -> None:
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass

    async def _poll_and_execute(self) -> bool:
        """
        Claim and process at most one job.

        Returns:
            True if a row was claimed.
        """
        started = time.monotonic()
        try:
            with get_tracer().start_as_current_span(SPAN_POP_JOB) as span:
                span.set_attribute("queue", self.queue.name)
                job = await self.queue.pop()
                span.set_attribute("claimed", job is not None)
        except JobDeserializationError as e:
            await self._handle_malformed(e)
            return True
        finally:
            self._metrics.observe_claim_latency(self.queue.name, time.monotonic() - started)

        if job is None:
            return False

        await self.process_job(job)
        return True

    async def _handle_malformed(self, error: JobDeserializationError) -> None:
        self.runs += 1
        if not self.bury_malformed_jobs:
            logger.error(
                "Claimed job cannot be reconstructed; leaving it for recovery",
                extra={"job_id": error.job_id, "queue": self.queue.name},
            )
            return

        try:
            await self.queue.bury(error.job_id, message=str(error), trace=error.reason)
        except RaceConditionError:
            logger.warning(
                "Malformed job moved before it could be buried",
                extra={"job_id": error.job_id},
            )

    async def process_job(self, job: Job) -> str:
        """
        Execute a claimed job and record its outcome.

        An outcome that cannot be written for a reason other than the store
        (a retry whose content no longer serializes, for example) buries the
        job instead.

        Args:
            job: The claimed job.

        Returns:
            The recorded outcome: ``deleted``, ``released``, ``buried``, or
            ``lost`` if the row was moved by someone else meanwhile.

        Raises:
            StoreError: If the outcome could not be written. The job stays
                RUNNING until ``recover`` reclaims it.
        """
        self.runs += 1
        started = time.monotonic()

        with job_context(job_id=job.id, queue=self.queue.name):
            try:
                outcome = await self._execute(job)
                label = await self._record_or_bury(job, outcome)
            except RaceConditionError as e:
                logger.warning(
                    "Job was moved by another party before its outcome was recorded",
                    extra={"job_id": job.id, "error": str(e)},
                )
                label = "lost"

        duration = time.monotonic() - started
        self._metrics.record_job_completed(
            queue=self.queue.name,
            outcome=label,
            duration_seconds=duration,
        )
        logger.info(
            "Job processed",
            extra={
                "job_id": job.id,
                "outcome": label,
                "duration": f"{duration:.2f}s",
            },
        )
        return label

    async def _execute(self, job: Job) -> JobOutcome:
        try:
            with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
                span.set_attribute("job_id", str(job.id))
                span.set_attribute("queue", self.queue.name)
                span.set_attribute("job_class", job.get_identifier())

                outcome = await job.execute(self.queue)
        except Exception as e:
            logger.exception(
                "Job raised exception",
                extra={"job_id": job.id, "error": str(e)},
            )
            return Fail(message=str(e), trace=traceback.format_exc())

        if outcome is None:
            return Success()
        return outcome

    async def _record_or_bury(self, job: Job, outcome: JobOutcome) -> str:
        try:
            return await self._record_outcome(job, outcome)
        except QueueError:
            raise
        except Exception as e:
            logger.exception(
                "Cannot record job outcome",
                extra={"job_id": job.id, "error": str(e)},
            )
            await self.queue.bury(
                job,
                message=f"Cannot record job outcome: {e}",
                trace=traceback.format_exc(),
            )
            return "buried"

    async def _record_outcome(self, job: Job, outcome: JobOutcome) -> str:
        if isinstance(outcome, Success):
            await self.queue.delete(job)
            return "deleted"
        if isinstance(outcome, Retry):
            await self.queue.release(job, delay=outcome.delay, scheduled=outcome.scheduled)
            return "released"
        if isinstance(outcome, Fail):
            await self.queue.bury(job, message=outcome.message, trace=outcome.trace)
            return "buried"

        await self.queue.bury(job, message=f"Unknown job outcome: {outcome!r}")
        return "buried"


async def run_async() -> None:
    """Run the worker asynchronously."""
    setup_logging()
    settings = get_settings()
    serve_metrics(settings.prometheus_port)
    setup_tracing()
    if settings.otel_enabled:
        instrument_sqlalchemy(get_engine())
    session_factory = await init_db()

    queue = TableQueue.from_settings(
        session_factory,
        registry,
        settings,
        metrics=get_metrics(),
    )
    worker = Worker(queue)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop())
        )

    try:
        await worker.start()
    finally:
        await close_db()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()

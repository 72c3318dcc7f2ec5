"""
Reaper for recovering abandoned jobs.

The reaper runs periodically to find jobs left RUNNING by workers that
crashed or hung after claiming them, and returns them to the queue.
"""

import asyncio
import logging
import signal

from tablequeue.config import get_settings
from tablequeue.constants import SPAN_RECOVER, JobStatus
from tablequeue.db import close_db, get_engine, init_db
from tablequeue.jobs.registry import registry
from tablequeue.observability.logging import setup_logging
from tablequeue.observability.metrics import get_metrics, serve_metrics
from tablequeue.observability.tracing import get_tracer, instrument_sqlalchemy, setup_tracing
from tablequeue.queue.table import TableQueue

logger = logging.getLogger(__name__)


class Reaper:
    """
    Periodic recovery of abandoned jobs.

    Each run:
    1. Moves jobs RUNNING for longer than the execution time back to PENDING
    2. Refreshes the pending-jobs gauge for the queue
    """

    def __init__(
        self,
        queue: TableQueue,
        interval_seconds: int | None = None,
        execution_time_minutes: int | None = None,
    ):
        """
        Initialize the reaper.

        Args:
            queue: The queue to recover.
            interval_seconds: Seconds between reaper runs.
            execution_time_minutes: How long a job may stay RUNNING before it
                counts as abandoned.
        """
        settings = get_settings()
        self.queue = queue
        self.interval = interval_seconds or settings.reaper_interval_seconds
        self.execution_time = (
            settings.reaper_execution_time_minutes
            if execution_time_minutes is None
            else execution_time_minutes
        )
        self._running = False
        self._stopped = asyncio.Event()
        self._metrics = get_metrics()

    async def start(self) -> None:
        """Start the reaper loop."""
        logger.info(
            f"Reaper starting with interval {self.interval}s",
            extra={"queue": self.queue.name, "execution_time": self.execution_time},
        )
        self._running = True
        self._stopped.clear()

        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(f"Error in reaper loop: {e}")

            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Reaper stopped")

    async def stop(self) -> None:
        """Stop the reaper."""
        logger.info("Reaper stopping")
        self._running = False
        self._stopped.set()

    async def run_once(self) -> int:
        """
        Run the reaper once (for testing or cron-style execution).

        Returns:
            Number of jobs recovered.
        """
        with get_tracer().start_as_current_span(SPAN_RECOVER) as span:
            span.set_attribute("queue", self.queue.name)
            recovered = await self.queue.recover(self.execution_time)
            span.set_attribute("recovered", recovered)

        pending = await self.queue.count(JobStatus.PENDING)
        self._metrics.update_queue_pending(self.queue.name, pending)

        return recovered


async def run_async() -> None:
    """Run the reaper asynchronously."""
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
    reaper = Reaper(queue)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(reaper.stop())
        )

    try:
        await reaper.start()
    finally:
        await close_db()


def run() -> None:
    """Run the reaper."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()

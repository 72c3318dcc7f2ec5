"""
Table-backed queue engine.
Implements the job lifecycle on top of a single relational table.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Literal, TypeVar

from sqlalchemy import Table, and_, delete, func, insert, select, update
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tablequeue.config import Settings
from tablequeue.constants import (
    DEFAULT_TABLE_NAME,
    LIFETIME_DISABLED,
    LIFETIME_UNLIMITED,
    JobStatus,
)
from tablequeue.db.models import get_jobs_table
from tablequeue.exceptions import (
    JobDeserializationError,
    JobNotFoundError,
    QueueIntegrityError,
    RaceConditionError,
    StoreError,
)
from tablequeue.jobs.base import Job
from tablequeue.jobs.registry import JobRegistry
from tablequeue.observability.metrics import MetricsCollector
from tablequeue.types.job import Delay, Schedule

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the format stored in the table."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_naive_utc(value: Schedule) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return datetime.fromtimestamp(value, timezone.utc).replace(tzinfo=None)


def _to_timedelta(delay: Delay) -> timedelta:
    if isinstance(delay, timedelta):
        return delay
    return timedelta(seconds=delay)


class TableQueue:
    """
    Durable job queue stored in a relational table.

    Implements atomic operations for:
    - Job submission (push) and inspection (peek)
    - Claiming with a row write lock and a conditional update (pop)
    - Completion transitions guarded by optimistic checks (delete, bury, release)
    - Crash recovery of abandoned claims (recover)
    - Retention-based garbage collection of finished jobs (purge)

    Every operation runs in its own short transaction on a session taken from
    the factory given to the constructor.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        name: str,
        registry: JobRegistry,
        *,
        table_name: str = DEFAULT_TABLE_NAME,
        deleted_lifetime: int = LIFETIME_DISABLED,
        buried_lifetime: int = LIFETIME_DISABLED,
        claim_order: Literal["desc", "asc"] = "desc",
        clock: Clock = utcnow,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the queue.

        Args:
            session_factory: Factory for sessions on the store holding the table.
            name: Logical queue name; all rows of this queue carry it.
            registry: Registry used to reconstruct jobs from their payload.
            table_name: Name of the jobs table.
            deleted_lifetime: Minutes to keep deleted (successful) jobs.
            buried_lifetime: Minutes to keep buried (failed) jobs.
            claim_order: Order on ``scheduled`` used to pick the next job.
            clock: Source of the current time (naive UTC).
            metrics: Optional metrics collector.
        """
        if claim_order not in ("desc", "asc"):
            raise ValueError(f"Invalid claim order: {claim_order!r}")

        self.name = name
        self._session_factory = session_factory
        self._registry = registry
        self._table: Table = get_jobs_table(table_name)
        self._clock = clock
        self._claim_order = claim_order
        self._metrics = metrics
        self.deleted_lifetime = deleted_lifetime
        self.buried_lifetime = buried_lifetime

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        registry: JobRegistry,
        settings: Settings,
        name: str | None = None,
        **kwargs: Any,
    ) -> "TableQueue":
        """Build a queue configured from application settings."""
        return cls(
            session_factory,
            name or settings.queue_name,
            registry,
            table_name=settings.queue_table_name,
            deleted_lifetime=settings.queue_deleted_lifetime,
            buried_lifetime=settings.queue_buried_lifetime,
            claim_order=settings.queue_claim_order,
            **kwargs,
        )

    @property
    def deleted_lifetime(self) -> int:
        """How long to keep deleted (successful) jobs, in minutes."""
        return self._deleted_lifetime

    @deleted_lifetime.setter
    def deleted_lifetime(self, value: int) -> None:
        self._deleted_lifetime = self._check_lifetime(value)

    @property
    def buried_lifetime(self) -> int:
        """How long to keep buried (failed) jobs, in minutes."""
        return self._buried_lifetime

    @buried_lifetime.setter
    def buried_lifetime(self, value: int) -> None:
        self._buried_lifetime = self._check_lifetime(value)

    @staticmethod
    def _check_lifetime(value: int) -> int:
        value = int(value)
        if value < LIFETIME_UNLIMITED:
            raise ValueError(f"Invalid lifetime: {value}")
        return value

    # ------------------------------------------------------------------
    # Lifecycle store
    # ------------------------------------------------------------------

    async def push(
        self,
        job: Job,
        *,
        delay: Delay | None = None,
        scheduled: Schedule | None = None,
    ) -> Job:
        """
        Add a job to the queue.

        Args:
            job: The job to store. Its ``id`` is set from the new row.
            delay: Seconds (or timedelta) before the job becomes eligible.
            scheduled: Absolute time the job becomes eligible; wins over delay.

        Returns:
            The same job, with its id assigned.
        """
        now = self._clock()
        stmt = insert(self._table).values(
            queue=self.name,
            status=int(JobStatus.PENDING),
            created=now,
            data=job.serialize(),
            scheduled=self._compute_scheduled(now, delay, scheduled),
        )

        async def _insert(session: AsyncSession) -> int:
            result = await session.execute(stmt)
            return result.inserted_primary_key[0]

        job.id = await self._run("push", _insert)

        logger.info(
            "Pushed job",
            extra={"job_id": job.id, "queue": self.name},
        )
        if self._metrics is not None:
            self._metrics.record_job_pushed(self.name)
        return job

    async def peek(self, job_id: int) -> Job:
        """
        Get a job by id, whatever its status.

        Raises:
            JobNotFoundError: If no row has the id.
            JobDeserializationError: If the stored payload is unusable.
        """
        stmt = select(self._table).where(self._table.c.id == job_id)

        async def _fetch(session: AsyncSession) -> RowMapping | None:
            result = await session.execute(stmt)
            return result.mappings().first()

        row = await self._run("peek", _fetch)
        if row is None:
            raise JobNotFoundError(job_id)
        return self._unserialize(row)

    async def delete(self, job: Job | int) -> None:
        """
        Record that a claimed job succeeded.

        With deleted-job retention disabled the row is removed; otherwise it
        moves from RUNNING to DELETED and is purged once its lifetime passes.

        Raises:
            RaceConditionError: If the row was no longer RUNNING.
        """
        job_id = self._job_id(job)
        if self.deleted_lifetime == LIFETIME_DISABLED:
            await self._remove(job_id)
        else:
            await self._transition_running(
                job_id,
                status=int(JobStatus.DELETED),
                finished=self._clock(),
            )

        logger.info("Deleted job", extra={"job_id": job_id, "queue": self.name})

    async def count(self, status: JobStatus | None = None) -> int:
        """
        Count the rows of this queue.

        Args:
            status: Optional status filter.
        """
        filters = [self._table.c.queue == self.name]
        if status is not None:
            filters.append(self._table.c.status == int(status))
        stmt = select(func.count()).select_from(self._table).where(and_(*filters))

        async def _count(session: AsyncSession) -> int:
            result = await session.execute(stmt)
            return result.scalar() or 0

        return await self._run("count", _count)

    # ------------------------------------------------------------------
    # Claim protocol
    # ------------------------------------------------------------------

    async def pop(self) -> Job | None:
        """
        Claim the next eligible job.

        Garbage collection runs first. The claim then selects one PENDING row
        that is due, holding a write lock on it, and moves it to RUNNING with a
        conditional update. Losing the update to a concurrent claimer is not an
        error: the call returns None, as it does when nothing is due.

        Returns:
            The claimed job, or None if no job is available.

        Raises:
            StoreError: If the store failed; the transaction was rolled back.
            JobDeserializationError: If the claimed row's payload is unusable.
                The row stays RUNNING and is reclaimed by ``recover``.
        """
        await self.purge()

        now = self._clock()

        async def _claim(session: AsyncSession) -> RowMapping | None:
            row = await self._select_candidate(session, now)
            if row is None:
                return None

            stmt = (
                update(self._table)
                .where(
                    and_(
                        self._table.c.id == row["id"],
                        self._table.c.status == int(JobStatus.PENDING),
                    )
                )
                .values(
                    status=int(JobStatus.RUNNING),
                    executed=now,
                    finished=None,
                )
            )
            result = await session.execute(stmt)

            if result.rowcount == 0:
                logger.info(
                    "Lost claim race",
                    extra={"job_id": row["id"], "queue": self.name},
                )
                return None
            if result.rowcount > 1:
                raise QueueIntegrityError(
                    f"Claim of job {row['id']} updated {result.rowcount} rows"
                )
            return row

        row = await self._run("pop", _claim)
        if row is None:
            return None

        logger.info("Claimed job", extra={"job_id": row["id"], "queue": self.name})
        if self._metrics is not None:
            self._metrics.record_job_claimed(self.name)

        return self._unserialize(row)

    async def _select_candidate(self, session: AsyncSession, now: datetime) -> RowMapping | None:
        scheduled = self._table.c.scheduled
        stmt = (
            select(self._table)
            .where(
                and_(
                    self._table.c.status == int(JobStatus.PENDING),
                    self._table.c.queue == self.name,
                    scheduled <= now,
                )
            )
            .order_by(scheduled.desc() if self._claim_order == "desc" else scheduled.asc())
            .limit(1)
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.mappings().first()

    # ------------------------------------------------------------------
    # Completion transitions
    # ------------------------------------------------------------------

    async def bury(
        self,
        job: Job | int,
        *,
        message: str | None = None,
        trace: str | None = None,
    ) -> None:
        """
        Record that a claimed job failed permanently.

        Args:
            job: The job (or its id).
            message: Why the job failed.
            trace: Stack trace for further investigation.

        Raises:
            RaceConditionError: If the row was no longer RUNNING.
        """
        job_id = self._job_id(job)
        if self.buried_lifetime == LIFETIME_DISABLED:
            await self._remove(job_id)
        else:
            await self._transition_running(
                job_id,
                status=int(JobStatus.BURIED),
                finished=self._clock(),
                message=message,
                trace=trace,
            )

        logger.warning(
            "Buried job",
            extra={"job_id": job_id, "queue": self.name, "error": message},
        )

    async def release(
        self,
        job: Job,
        *,
        delay: Delay | None = None,
        scheduled: Schedule | None = None,
    ) -> None:
        """
        Return a claimed job to the queue for another attempt.

        The job's current content is stored, so a job may update its own
        state (retry counters and the like) before being released.

        Args:
            job: The claimed job.
            delay: Seconds (or timedelta) before the job becomes eligible again.
            scheduled: Absolute time the job becomes eligible again.

        Raises:
            RaceConditionError: If the row was no longer RUNNING.
        """
        now = self._clock()
        await self._transition_running(
            self._job_id(job),
            status=int(JobStatus.PENDING),
            finished=now,
            scheduled=self._compute_scheduled(now, delay, scheduled),
            data=job.serialize(),
        )

        logger.info("Released job", extra={"job_id": job.id, "queue": self.name})

    async def _transition_running(self, job_id: int, **values: Any) -> None:
        stmt = (
            update(self._table)
            .where(
                and_(
                    self._table.c.id == job_id,
                    self._table.c.status == int(JobStatus.RUNNING),
                )
            )
            .values(**values)
        )

        async def _update(session: AsyncSession) -> int:
            result = await session.execute(stmt)
            return result.rowcount

        rowcount = await self._run("update", _update)
        if rowcount != 1:
            raise RaceConditionError(job_id, JobStatus.RUNNING, rowcount)

    async def _remove(self, job_id: int) -> None:
        stmt = delete(self._table).where(self._table.c.id == job_id)

        async def _delete(session: AsyncSession) -> None:
            await session.execute(stmt)

        await self._run("remove", _delete)

    # ------------------------------------------------------------------
    # Recovery & garbage collection
    # ------------------------------------------------------------------

    async def recover(self, execution_time: int) -> int:
        """
        Return jobs abandoned by crashed or hung workers to PENDING.

        A job is abandoned when it has been RUNNING for longer than
        ``execution_time`` minutes without reaching a terminal state.

        Args:
            execution_time: Maximum expected execution time, in minutes.

        Returns:
            Number of recovered jobs.
        """
        threshold = self._clock() - timedelta(minutes=execution_time)
        stmt = (
            update(self._table)
            .where(
                and_(
                    self._table.c.queue == self.name,
                    self._table.c.status == int(JobStatus.RUNNING),
                    self._table.c.executed < threshold,
                    self._table.c.finished.is_(None),
                )
            )
            .values(status=int(JobStatus.PENDING))
        )

        async def _recover(session: AsyncSession) -> int:
            result = await session.execute(stmt)
            return result.rowcount

        count = await self._run("recover", _recover)

        if count > 0:
            logger.info(
                f"Recovered {count} abandoned jobs",
                extra={"queue": self.name, "job_count": count},
            )
            if self._metrics is not None:
                self._metrics.record_jobs_recovered(self.name, count)
        return count

    async def purge(
        self,
        *,
        buried_lifetime: int | None = None,
        deleted_lifetime: int | None = None,
    ) -> int:
        """
        Remove finished jobs older than their retention lifetime.

        Args:
            buried_lifetime: Override for the buried-job lifetime (minutes).
            deleted_lifetime: Override for the deleted-job lifetime (minutes).

        Returns:
            Number of removed rows.

        Raises:
            ValueError: If an override is below UNLIMITED (-1).
        """
        lifetimes = {
            JobStatus.BURIED: (
                self.buried_lifetime
                if buried_lifetime is None
                else self._check_lifetime(buried_lifetime)
            ),
            JobStatus.DELETED: (
                self.deleted_lifetime
                if deleted_lifetime is None
                else self._check_lifetime(deleted_lifetime)
            ),
        }
        now = self._clock()

        statements = []
        for status, lifetime in lifetimes.items():
            if lifetime == LIFETIME_UNLIMITED:
                continue
            threshold = now - timedelta(minutes=lifetime)
            statements.append(
                delete(self._table).where(
                    and_(
                        self._table.c.queue == self.name,
                        self._table.c.status == int(status),
                        self._table.c.finished.is_not(None),
                        self._table.c.finished < threshold,
                    )
                )
            )

        if not statements:
            return 0

        async def _purge(session: AsyncSession) -> int:
            removed = 0
            for stmt in statements:
                result = await session.execute(stmt)
                removed += result.rowcount
            return removed

        removed = await self._run("purge", _purge)

        if removed > 0:
            logger.debug(
                f"Purged {removed} finished jobs",
                extra={"queue": self.name, "job_count": removed},
            )
            if self._metrics is not None:
                self._metrics.record_jobs_purged(self.name, removed)
        return removed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run(self, operation: str, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run ``work`` in one transaction, wrapping store failures."""
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    return await work(session)
            except SQLAlchemyError as e:
                # the transaction is already rolled back; hand back a clean connection
                await session.close()
                logger.error(
                    f"Store failure during {operation}",
                    extra={"queue": self.name, "error": str(e)},
                )
                raise StoreError(f"{operation} failed on queue {self.name!r}: {e}") from e

    def _compute_scheduled(
        self,
        now: datetime,
        delay: Delay | None,
        scheduled: Schedule | None,
    ) -> datetime:
        if scheduled is not None:
            return _to_naive_utc(scheduled)
        if delay is not None:
            return now + _to_timedelta(delay)
        return now

    def _unserialize(self, row: RowMapping) -> Job:
        job_id = row["id"]
        try:
            data = json.loads(row["data"])
            identifier = data["class"]
            content = data.get("content")
            return self._registry.create(identifier, content, id=job_id)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.error(
                "Cannot reconstruct job",
                extra={"job_id": job_id, "queue": self.name, "error": str(e)},
            )
            raise JobDeserializationError(job_id, str(e)) from e

    @staticmethod
    def _job_id(job: Job | int) -> int:
        job_id = job if isinstance(job, int) else job.id
        if job_id is None:
            raise ValueError("Job has no id; it was never pushed")
        return job_id

    def __repr__(self) -> str:
        return f"TableQueue(name={self.name!r}, table={self._table.name!r})"

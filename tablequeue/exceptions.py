"""
Queue exceptions.

Store failures and missed optimistic updates travel on separate types:
``StoreError`` means the database could not complete the operation, while
``RaceConditionError`` means another party already moved the row.
"""

from tablequeue.constants import JobStatus


class QueueError(Exception):
    """Base class for all queue errors."""


class StoreError(QueueError):
    """The underlying store failed; the driver error is chained as __cause__."""


class RaceConditionError(QueueError):
    """A conditional update did not affect exactly one row."""

    def __init__(self, job_id: int | None, expected: JobStatus, rowcount: int):
        self.job_id = job_id
        self.expected = expected
        self.rowcount = rowcount
        super().__init__(
            f"Race-condition detected while updating job {job_id} "
            f"(expected status {expected.name}, {rowcount} rows affected)"
        )


class QueueIntegrityError(QueueError):
    """A claim touched more than one row, which primary-key targeting forbids."""


class JobNotFoundError(QueueError):
    """No row exists for the requested job id."""

    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class JobDeserializationError(QueueError):
    """A stored payload could not be turned back into a job."""

    def __init__(self, job_id: int, reason: str):
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Cannot reconstruct job {job_id}: {reason}")

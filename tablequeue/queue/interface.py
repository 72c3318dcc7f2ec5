"""
Queue capability interface.
"""

from typing import Protocol, runtime_checkable

from tablequeue.jobs.base import Job
from tablequeue.types.job import Delay, Schedule


@runtime_checkable
class QueueInterface(Protocol):
    """Operations a queue offers to producers, workers and the reaper."""

    name: str

    async def push(
        self,
        job: Job,
        *,
        delay: Delay | None = None,
        scheduled: Schedule | None = None,
    ) -> Job: ...

    async def pop(self) -> Job | None: ...

    async def peek(self, job_id: int) -> Job: ...

    async def delete(self, job: Job | int) -> None: ...

    async def bury(
        self,
        job: Job | int,
        *,
        message: str | None = None,
        trace: str | None = None,
    ) -> None: ...

    async def release(
        self,
        job: Job,
        *,
        delay: Delay | None = None,
        scheduled: Schedule | None = None,
    ) -> None: ...

    async def recover(self, execution_time: int) -> int: ...

"""
Integration tests for end-to-end queue timelines and concurrent claims.
"""

import asyncio
from datetime import timedelta

import pytest

from tablequeue.constants import JobStatus
from tablequeue.queue import TableQueue

from conftest import EPOCH, EchoJob


class TestTimelines:
    """Job timelines driven by a controlled clock."""

    async def test_delay_and_release_timeline(self, queue, clock, fetch_row):
        """Test push with delay, claim, release with delay, and claim again."""
        clock.at(0)
        job_a = await queue.push(EchoJob({"name": "A"}), delay=10)

        clock.at(5)
        assert await queue.pop() is None

        clock.at(15)
        claimed = await queue.pop()
        assert claimed is not None
        assert claimed.id == job_a.id
        row = await fetch_row(job_a.id)
        assert row["status"] == JobStatus.RUNNING
        assert row["executed"] == EPOCH + timedelta(seconds=15)

        clock.at(16)
        await queue.release(claimed, delay=5)
        row = await fetch_row(job_a.id)
        assert row["status"] == JobStatus.PENDING
        assert row["scheduled"] == EPOCH + timedelta(seconds=21)

        clock.at(20)
        assert await queue.pop() is None

        clock.at(22)
        again = await queue.pop()
        assert again is not None
        assert again.id == job_a.id

    async def test_crash_recovery_timeline(self, queue, clock, fetch_row):
        """Test that a job abandoned by a crashed worker is recovered."""
        clock.at(0)
        job_b = await queue.push(EchoJob({"name": "B"}))
        assert (await queue.pop()).id == job_b.id

        # the worker crashes here without recording an outcome

        clock.at(30)
        assert await queue.recover(1) == 0
        assert (await fetch_row(job_b.id))["status"] == JobStatus.RUNNING

        clock.at(70)
        assert await queue.recover(1) == 1
        assert (await fetch_row(job_b.id))["status"] == JobStatus.PENDING

        reclaimed = await queue.pop()
        assert reclaimed.id == job_b.id


class TestConcurrentClaims:
    """At-most-one-claim under concurrent pollers."""

    @pytest.mark.parametrize("pollers", [2, 8])
    async def test_single_row_claimed_once(self, make_queue, pollers):
        """Test that concurrent pops hand one eligible row to one caller."""
        queues = [make_queue() for _ in range(pollers)]
        job = await queues[0].push(EchoJob())
        start = asyncio.Event()

        async def _claim(queue: TableQueue):
            await start.wait()
            return await queue.pop()

        tasks = [asyncio.create_task(_claim(q)) for q in queues]
        start.set()
        results = await asyncio.gather(*tasks)

        winners = [r for r in results if r is not None]
        assert len(winners) == 1
        assert winners[0].id == job.id

    async def test_many_rows_claimed_without_duplicates(self, make_queue):
        """Test that concurrent pollers drain a queue with no duplicate claims."""
        producer = make_queue()
        pushed = {(await producer.push(EchoJob({"n": n}))).id for n in range(10)}
        queues = [make_queue() for _ in range(4)]

        async def _drain(queue: TableQueue) -> list[int]:
            claimed = []
            while await queue.count(JobStatus.PENDING) > 0:
                job = await queue.pop()
                if job is not None:
                    claimed.append(job.id)
            return claimed

        results = await asyncio.gather(*(_drain(q) for q in queues))

        all_claimed = [job_id for claimed in results for job_id in claimed]
        assert len(all_claimed) == len(set(all_claimed))
        assert set(all_claimed) == pushed
        assert await producer.count(JobStatus.RUNNING) == 10

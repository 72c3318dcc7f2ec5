"""
Unit tests for recovery and garbage collection.
"""

import pytest

from tablequeue.constants import LIFETIME_DISABLED, LIFETIME_UNLIMITED, JobStatus

from conftest import EPOCH, EchoJob


class TestRecover:
    """Tests for recover."""

    async def test_recover_moves_stale_running_jobs(self, queue, clock, fetch_row):
        """Test that jobs RUNNING past the execution time return to PENDING."""
        job = await queue.push(EchoJob())
        await queue.pop()
        clock.advance(61)

        recovered = await queue.recover(1)

        assert recovered == 1
        assert (await fetch_row(job.id))["status"] == JobStatus.PENDING

    async def test_recover_ignores_recent_claims(self, queue, clock, fetch_row):
        """Test that recently claimed jobs are left alone."""
        job = await queue.push(EchoJob())
        await queue.pop()
        clock.advance(59)

        assert await queue.recover(1) == 0
        assert (await fetch_row(job.id))["status"] == JobStatus.RUNNING

    async def test_recover_ignores_finished_rows(self, queue, clock, update_row, fetch_row):
        """Test that RUNNING rows with a finished stamp are not recovered."""
        job = await queue.push(EchoJob())
        await queue.pop()
        await update_row(job.id, finished=EPOCH)
        clock.advance(600)

        assert await queue.recover(1) == 0
        assert (await fetch_row(job.id))["status"] == JobStatus.RUNNING

    async def test_recover_ignores_other_statuses(self, make_queue, clock, fetch_row):
        queue = make_queue(deleted_lifetime=LIFETIME_UNLIMITED)
        done = await queue.push(EchoJob())
        await queue.delete(await queue.pop())
        pending = await queue.push(EchoJob())
        clock.advance(600)

        assert await queue.recover(1) == 0
        assert (await fetch_row(pending.id))["status"] == JobStatus.PENDING
        assert (await fetch_row(done.id))["status"] == JobStatus.DELETED

    async def test_recover_is_scoped_to_queue(self, queue, make_queue, clock, fetch_row):
        other = make_queue("other")
        job = await other.push(EchoJob())
        await other.pop()
        clock.advance(120)

        assert await queue.recover(1) == 0
        assert await other.recover(1) == 1
        assert (await fetch_row(job.id))["status"] == JobStatus.PENDING

    async def test_recover_records_metric(self, queue, clock, metrics):
        await queue.push(EchoJob())
        await queue.pop()
        clock.advance(120)

        await queue.recover(1)

        assert metrics.registry.get_sample_value(
            "tablequeue_jobs_recovered_total", {"queue": "default"}
        ) == 1


class TestPurge:
    """Tests for purge."""

    async def _finish(self, queue, outcome: str) -> int:
        job = await queue.push(EchoJob())
        claimed = await queue.pop()
        if outcome == "delete":
            await queue.delete(claimed)
        else:
            await queue.bury(claimed, message="failed")
        return job.id

    async def test_purge_removes_rows_past_lifetime(self, make_queue, clock, fetch_row):
        """Test that terminal rows older than their lifetime are removed."""
        queue = make_queue(deleted_lifetime=10, buried_lifetime=20)
        deleted_id = await self._finish(queue, "delete")
        buried_id = await self._finish(queue, "bury")

        clock.advance(11 * 60)
        assert await queue.purge() == 1
        assert await fetch_row(deleted_id) is None
        assert (await fetch_row(buried_id))["status"] == JobStatus.BURIED

        clock.advance(10 * 60)
        assert await queue.purge() == 1
        assert await fetch_row(buried_id) is None

    async def test_purge_keeps_rows_within_lifetime(self, make_queue, clock, fetch_row):
        queue = make_queue(deleted_lifetime=10)
        job_id = await self._finish(queue, "delete")
        clock.advance(9 * 60)

        assert await queue.purge() == 0
        assert (await fetch_row(job_id))["status"] == JobStatus.DELETED

    async def test_purge_unlimited_keeps_everything(self, make_queue, clock, fetch_row):
        queue = make_queue(
            deleted_lifetime=LIFETIME_UNLIMITED,
            buried_lifetime=LIFETIME_UNLIMITED,
        )
        deleted_id = await self._finish(queue, "delete")
        buried_id = await self._finish(queue, "bury")
        clock.advance(365 * 24 * 3600)

        assert await queue.purge() == 0
        assert await fetch_row(deleted_id) is not None
        assert await fetch_row(buried_id) is not None

    async def test_purge_overrides(self, make_queue, clock, fetch_row):
        """Test that explicit lifetimes override the configured ones."""
        queue = make_queue(deleted_lifetime=LIFETIME_UNLIMITED)
        job_id = await self._finish(queue, "delete")
        clock.advance(1)

        assert await queue.purge(deleted_lifetime=LIFETIME_DISABLED) == 1
        assert await fetch_row(job_id) is None

    async def test_purge_never_touches_live_rows(self, make_queue, clock, fetch_row):
        """Test that PENDING and RUNNING rows survive any purge."""
        queue = make_queue()
        running = await queue.push(EchoJob())
        await queue.pop()
        pending = await queue.push(EchoJob(), delay=3600)
        clock.advance(7200)

        await queue.purge(deleted_lifetime=LIFETIME_DISABLED, buried_lifetime=LIFETIME_DISABLED)

        assert (await fetch_row(running.id))["status"] == JobStatus.RUNNING
        assert (await fetch_row(pending.id))["status"] == JobStatus.PENDING

    async def test_purge_sweeps_rows_retained_before_setting_change(
        self,
        make_queue,
        clock,
        fetch_row,
    ):
        """Test that disabling retention later sweeps the rows kept earlier."""
        queue = make_queue(buried_lifetime=60)
        job_id = await self._finish(queue, "bury")
        queue.buried_lifetime = LIFETIME_DISABLED
        clock.advance(1)

        await queue.purge()

        assert await fetch_row(job_id) is None

    async def test_pop_runs_purge_first(self, make_queue, clock, fetch_row):
        queue = make_queue(deleted_lifetime=1)
        job_id = await self._finish(queue, "delete")
        clock.advance(120)

        assert await queue.pop() is None
        assert await fetch_row(job_id) is None

    async def test_purge_is_scoped_to_queue(self, make_queue, clock, fetch_row):
        queue = make_queue(deleted_lifetime=1)
        other = make_queue("other", deleted_lifetime=LIFETIME_UNLIMITED)
        job_id = await self._finish(other, "delete")
        clock.advance(120)

        assert await queue.purge() == 0
        assert await fetch_row(job_id) is not None

    async def test_finished_stamp_boundary(self, make_queue, clock, fetch_row):
        """Test that a row exactly at its lifetime is kept (strictly older only)."""
        queue = make_queue(deleted_lifetime=10)
        job_id = await self._finish(queue, "delete")
        assert (await fetch_row(job_id))["finished"] == EPOCH
        clock.advance(10 * 60)

        assert await queue.purge() == 0
        clock.advance(1)
        assert await queue.purge() == 1

    @pytest.mark.parametrize("override", ["buried_lifetime", "deleted_lifetime"])
    async def test_purge_rejects_invalid_override(self, make_queue, clock, fetch_row, override):
        """Test that a lifetime below UNLIMITED is refused instead of purging everything."""
        queue = make_queue(deleted_lifetime=LIFETIME_UNLIMITED, buried_lifetime=LIFETIME_UNLIMITED)
        deleted_id = await self._finish(queue, "delete")
        buried_id = await self._finish(queue, "bury")
        clock.advance(60)

        with pytest.raises(ValueError):
            await queue.purge(**{override: -5})

        assert await fetch_row(deleted_id) is not None
        assert await fetch_row(buried_id) is not None

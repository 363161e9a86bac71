"""Unit tests for the housekeeping scheduler."""

from datetime import datetime, timezone

import pytest

from app.background.scheduler import (
    STALE_SWEEP_JOB_ID,
    init_scheduler,
    shutdown_scheduler,
    stale_cutoff,
    sweep_stale_processing,
)
from fakes import FakeDoubtRepository


def _doubt(doubts: FakeDoubtRepository, status: str, created_at: str) -> str:
    row = doubts.create({"student_id": "student-1", "course_id": "course-1", "query": "q", "status": status})
    doubts.rows[row["id"]]["created_at"] = created_at
    return row["id"]


def test_stale_cutoff():
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert stale_cutoff(15, now) == "2026-03-01T11:45:00+00:00"


@pytest.mark.asyncio
async def test_sweep_fails_only_old_processing_doubts():
    doubts = FakeDoubtRepository()
    old = _doubt(doubts, "processing", "2020-01-01T00:00:00+00:00")
    fresh = _doubt(doubts, "processing", "2999-01-01T00:00:00+00:00")
    settled = _doubt(doubts, "pending", "2020-01-01T00:00:00+00:00")

    assert await sweep_stale_processing(doubts, 15) == 1

    assert doubts.rows[old]["status"] == "failed"
    assert doubts.rows[fresh]["status"] == "processing"
    assert doubts.rows[settled]["status"] == "pending"


@pytest.mark.asyncio
async def test_sweep_errors_are_logged_not_raised():
    class BrokenRepository(FakeDoubtRepository):
        def fail_stale_processing(self, cutoff_iso):
            raise ConnectionError("database unavailable")

    assert await sweep_stale_processing(BrokenRepository(), 15) == 0


@pytest.mark.asyncio
async def test_init_registers_sweep_job():
    scheduler = init_scheduler(FakeDoubtRepository(), stale_minutes=15)
    try:
        jobs = scheduler.get_jobs()
        assert [job.id for job in jobs] == [STALE_SWEEP_JOB_ID]
        assert jobs[0].trigger.interval.total_seconds() == 5 * 60
    finally:
        shutdown_scheduler(scheduler)
    assert not scheduler.running


@pytest.mark.asyncio
async def test_short_window_sweeps_every_minute():
    scheduler = init_scheduler(FakeDoubtRepository(), stale_minutes=2)
    try:
        assert scheduler.get_job(STALE_SWEEP_JOB_ID).trigger.interval.total_seconds() == 60
    finally:
        shutdown_scheduler(scheduler)


def test_shutdown_tolerates_missing_scheduler():
    shutdown_scheduler(None)

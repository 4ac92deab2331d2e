"""
Unit tests for the background scheduler.

WHAT: Start registers the payment reminder job once, shutdown clears
the scheduler, and status reflects both.
"""

import pytest

from client_portal.services import scheduler as scheduler_module
from client_portal.services.scheduler import (
    PAYMENT_REMINDER_JOB_ID,
    get_scheduler,
    get_scheduler_status,
    shutdown_scheduler,
    start_scheduler,
)


@pytest.fixture(autouse=True)
async def clean_scheduler():
    yield
    await shutdown_scheduler()


class TestScheduler:
    @pytest.mark.asyncio
    async def test_status_before_start(self, monkeypatch):
        monkeypatch.setattr(scheduler_module, "_scheduler", None)

        status = get_scheduler_status()

        assert status["running"] is False
        assert status["jobs"] == []

    @pytest.mark.asyncio
    async def test_start_registers_reminder_job(self):
        await start_scheduler()

        status = get_scheduler_status()
        assert status["running"] is True
        assert [job["id"] for job in status["jobs"]] == [PAYMENT_REMINDER_JOB_ID]
        assert status["jobs"][0]["next_run_time"] is not None

    @pytest.mark.asyncio
    async def test_second_start_is_ignored(self):
        await start_scheduler()
        first = get_scheduler()

        await start_scheduler()

        assert get_scheduler() is first
        assert len(first.get_jobs()) == 1

    @pytest.mark.asyncio
    async def test_shutdown(self):
        await start_scheduler()

        await shutdown_scheduler()

        assert get_scheduler() is None
        assert get_scheduler_status()["running"] is False

    @pytest.mark.asyncio
    async def test_shutdown_when_not_started(self):
        await shutdown_scheduler()
        assert get_scheduler() is None

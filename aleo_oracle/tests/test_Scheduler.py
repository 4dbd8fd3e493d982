"""Unit tests for Scheduler."""

import asyncio

import pytest

from aleo_oracle.src.Scheduler import Scheduler


class TestScheduler:
    """Test job registration and execution."""

    def test_duplicate_job(self) -> None:
        scheduler = Scheduler()
        scheduler.add_job("poll", 1, lambda: None)
        with pytest.raises(ValueError, match="already registered"):
            scheduler.add_job("poll", 1, lambda: None)

    def test_invalid_interval(self) -> None:
        with pytest.raises(ValueError, match="interval must be positive"):
            Scheduler().add_job("poll", 0, lambda: None)

    async def test_run_job_once_sync_and_async(self) -> None:
        calls = []

        async def async_job() -> None:
            calls.append("async")

        scheduler = Scheduler()
        scheduler.add_job("sync", 1, lambda: calls.append("sync"))
        scheduler.add_job("async", 1, async_job)

        assert await scheduler.run_job_once("sync")
        assert await scheduler.run_job_once("async")
        assert calls == ["sync", "async"]
        assert scheduler.jobs["async"].runs == 1

    async def test_failing_job_counted(self) -> None:
        def boom() -> None:
            raise RuntimeError("boom")

        scheduler = Scheduler()
        scheduler.add_job("boom", 1, boom)

        assert not await scheduler.run_job_once("boom")
        assert scheduler.jobs["boom"].failures == 1

    async def test_unknown_job(self) -> None:
        with pytest.raises(KeyError):
            await Scheduler().run_job_once("missing")

    async def test_start_and_stop(self) -> None:
        calls = []
        scheduler = Scheduler("test")
        scheduler.add_job("tick", 0.01, lambda: calls.append(1))

        scheduler.start()
        assert scheduler.is_running
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert not scheduler.is_running
        assert len(calls) >= 2

    async def test_delayed_start(self) -> None:
        calls = []
        scheduler = Scheduler()
        scheduler.add_job("later", 10, lambda: calls.append(1), run_immediately=False)

        scheduler.start()
        await asyncio.sleep(0.01)
        await scheduler.stop()

        assert calls == []

    async def test_job_keeps_running_after_failure(self) -> None:
        runs = []

        def flaky() -> None:
            runs.append(1)
            raise RuntimeError("flaky")

        scheduler = Scheduler()
        scheduler.add_job("flaky", 0.01, flaky)
        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert len(runs) >= 2
        assert scheduler.jobs["flaky"].failures == len(runs)

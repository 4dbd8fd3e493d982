"""Scheduler: Periodic jobs as cooperative asyncio tasks.

Each job runs in its own task: run, sleep ``interval`` seconds, repeat.
A failing run is logged and counted; the next run happens on schedule.
``run_job_once`` executes a job inline so tests can drive cycles without
waiting on the clock.

.. code-block:: python

    scheduler = Scheduler("relayer")
    scheduler.add_job("poll", 30, relayer.run_cycle)
    scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

JobFunc = Callable[[], "Awaitable[Any] | Any"]


@dataclass
class PeriodicJob:
    """A job and its run counters.

    :ivar name: Unique job name.
    :ivar interval: Seconds between runs.
    :ivar func: Sync or async callable without arguments.
    :ivar run_immediately: Run once on start instead of after the first interval.
    """

    name: str
    interval: float
    func: JobFunc
    run_immediately: bool = True
    runs: int = 0
    failures: int = 0
    last_run: float | None = None


class Scheduler:
    """Owns one task per periodic job."""

    def __init__(self, name: str = "scheduler") -> None:
        self.name = name
        self.jobs: dict[str, PeriodicJob] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    def add_job(
        self, name: str, interval: float, func: JobFunc, run_immediately: bool = True
    ) -> PeriodicJob:
        """Register a job.

        :raises ValueError: On a duplicate name or non-positive interval.
        """
        if name in self.jobs:
            raise ValueError(f"Job '{name}' already registered")
        if interval <= 0:
            raise ValueError(f"Job '{name}' interval must be positive")
        job = PeriodicJob(name=name, interval=interval, func=func, run_immediately=run_immediately)
        self.jobs[name] = job
        return job

    async def run_job_once(self, name: str) -> bool:
        """Run a job a single time.

        :param name: Job name.
        :returns: True if the run completed without raising.
        :raises KeyError: If the job is unknown.
        """
        job = self.jobs[name]
        job.runs += 1
        job.last_run = time.time()
        try:
            result = job.func()
            if inspect.isawaitable(result):
                await result
            return True
        except asyncio.CancelledError:
            raise
        except Exception:
            job.failures += 1
            logger.exception(f"[{self.name}] Job '{name}' failed")
            return False

    async def _run_forever(self, job: PeriodicJob) -> None:
        if not job.run_immediately:
            await asyncio.sleep(job.interval)
        while True:
            await self.run_job_once(job.name)
            await asyncio.sleep(job.interval)

    def start(self) -> None:
        """Start every registered job. Must be called from a running loop."""
        for name, job in self.jobs.items():
            task = self._tasks.get(name)
            if task is not None and not task.done():
                continue
            self._tasks[name] = asyncio.create_task(self._run_forever(job), name=f"{self.name}:{name}")
        logger.info(
            f"[{self.name}] Started jobs: "
            + ", ".join(f"{j.name} every {j.interval:g}s" for j in self.jobs.values())
        )

    async def stop(self) -> None:
        """Cancel every job task and wait for them to finish."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info(f"[{self.name}] Stopped")

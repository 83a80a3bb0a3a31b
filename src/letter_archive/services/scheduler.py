"""Asyncio runner for periodic maintenance jobs."""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger


@dataclass(frozen=True)
class PeriodicJob:
    name: str
    interval: float
    func: Callable[[], Any]


class JobScheduler:
    """Runs blocking jobs on fixed intervals in worker threads.

    A failing run is logged and the job keeps its schedule.

    Example:
        ```python
        scheduler = JobScheduler()
        scheduler.add_job("storage-sweep", 3600, maintenance.reconcile_storage)
        await scheduler.start()
        ...
        await scheduler.stop()
        ```
    """

    def __init__(self) -> None:
        self._jobs: list[PeriodicJob] = []
        self._tasks: list[asyncio.Task] = []
        self._runs: dict[str, int] = {}

    def add_job(self, name: str, interval: float, func: Callable[[], Any]) -> None:
        if interval <= 0:
            raise ValueError(f"Interval of job '{name}' must be positive")
        self._jobs.append(PeriodicJob(name=name, interval=interval, func=func))
        self._runs[name] = 0

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    @property
    def jobs(self) -> list[str]:
        return [job.name for job in self._jobs]

    def run_count(self, name: str) -> int:
        return self._runs.get(name, 0)

    async def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._loop(job), name=f"job-{job.name}") for job in self._jobs
        ]
        logger.info(f"Scheduler started with jobs: {', '.join(self.jobs) or 'none'}")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Scheduler stopped")

    async def run_once(self, name: str) -> Any:
        """Run one job immediately in a worker thread."""
        job = next((job for job in self._jobs if job.name == name), None)
        if job is None:
            raise KeyError(name)
        return await self._run(job)

    async def _loop(self, job: PeriodicJob) -> None:
        while True:
            await asyncio.sleep(job.interval)
            try:
                await self._run(job)
            except Exception as e:
                logger.error(f"Job {job.name} failed: {e}")

    async def _run(self, job: PeriodicJob) -> Any:
        result = await asyncio.to_thread(job.func)
        self._runs[job.name] += 1
        logger.debug(f"Job {job.name} finished: {result}")
        return result

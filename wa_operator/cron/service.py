"""Fixed-interval maintenance jobs running as asyncio tasks."""

import asyncio
import inspect
from time import perf_counter
from typing import Any

from loguru import logger

from wa_operator.cron.types import JobCallback, PeriodicJob
from wa_operator.observability.metrics import MetricsStore


class CronService:
    """
    Owns one task per periodic job.

    Jobs sleep first and then run, forever, until `stop()` cancels them. A
    failing run is logged and counted; the job keeps its schedule.
    """

    def __init__(self, metrics: MetricsStore | None = None):
        self.metrics = metrics
        self._jobs: dict[str, PeriodicJob] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def add_job(self, name: str, interval_s: float, callback: JobCallback, enabled: bool = True) -> PeriodicJob:
        if name in self._jobs:
            raise ValueError(f"Job '{name}' already registered")
        job = PeriodicJob(name=name, interval_s=max(0.01, float(interval_s)), callback=callback, enabled=enabled)
        self._jobs[name] = job
        return job

    def list_jobs(self, include_disabled: bool = False) -> list[PeriodicJob]:
        return [job for job in self._jobs.values() if include_disabled or job.enabled]

    async def start(self) -> None:
        for job in self.list_jobs():
            if job.name not in self._tasks:
                self._tasks[job.name] = asyncio.create_task(self._loop(job), name=f"cron:{job.name}")
        logger.info(f"Cron started with {len(self._tasks)} jobs")

    def stop(self) -> None:
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()

    async def run_job(self, name: str) -> bool:
        """Run one job immediately; returns whether it succeeded."""
        job = self._jobs[name]
        started = perf_counter()
        error_message = ""
        try:
            result = job.callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            error_message = "cancelled"
            raise
        except Exception as e:
            error_message = str(e)
            job.failures += 1
            job.last_error = error_message
            logger.error(f"Cron job '{name}' failed: {e}")
        finally:
            job.runs += 1
            if self.metrics is not None:
                self.metrics.record_job_run(
                    name=name,
                    success=not error_message,
                    latency_ms=(perf_counter() - started) * 1000.0,
                    error=error_message,
                )
        return not error_message

    async def _loop(self, job: PeriodicJob) -> None:
        while True:
            await asyncio.sleep(job.interval_s)
            await self.run_job(job.name)

    def status(self) -> dict[str, Any]:
        return {
            "jobs": len(self.list_jobs()),
            "running": len(self._tasks),
            "failures": {job.name: job.failures for job in self._jobs.values() if job.failures},
        }

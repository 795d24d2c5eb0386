"""
Cron-driven scheduler for the monitoring pipeline.

Each job runs in its own asyncio task: sleep until the next cron tick, run,
repeat. A job never overlaps itself; ticks that pass while a run is still in
progress are skipped.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from croniter import croniter

from core.types import utc_now
from utils.error_handling import ConfigurationError, describe_error

logger = logging.getLogger(__name__)


@dataclass
class ScheduledJob:
    """A named pipeline operation bound to a cron schedule"""

    name: str
    cron_schedule: str
    action: Callable[[], Awaitable[Any]]
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    last_status: Optional[str] = None
    run_count: int = 0
    skipped_runs: int = 0
    running: bool = False

    def calculate_next_run(self, now: datetime) -> datetime:
        self.next_run = croniter(self.cron_schedule, now).get_next(datetime)
        return self.next_run

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "cron_schedule": self.cron_schedule,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_status": self.last_status,
            "run_count": self.run_count,
            "skipped_runs": self.skipped_runs,
            "running": self.running,
        }


class PipelineScheduler:
    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.clock = clock
        self.sleep = sleep
        self.jobs: Dict[str, ScheduledJob] = {}
        self._tasks: List[asyncio.Task] = []

    def add_job(
        self, name: str, cron_schedule: str, action: Callable[[], Awaitable[Any]]
    ) -> ScheduledJob:
        if not croniter.is_valid(cron_schedule):
            raise ConfigurationError(
                f"Invalid cron schedule for {name}: {cron_schedule!r}",
                {"job": name, "cron_schedule": cron_schedule},
            )
        job = ScheduledJob(name=name, cron_schedule=cron_schedule, action=action)
        job.calculate_next_run(self.clock())
        self.jobs[name] = job
        logger.info("Scheduled %s at %r (next run %s)", name, cron_schedule, job.next_run)
        return job

    async def run_job(self, name: str) -> bool:
        """
        Run a job once now.

        Returns False without running if the previous run is still going.
        Failures are logged and recorded on the job, never raised.
        """
        job = self.jobs[name]
        if job.running:
            job.skipped_runs += 1
            logger.warning("%s is still running; skipping this tick", name)
            return False

        job.running = True
        started = self.clock()
        try:
            result = await job.action()
            job.last_status = "ok"
            summary = getattr(result, "to_dict", None)
            if summary is not None:
                logger.info("%s finished: %s", name, summary())
        except asyncio.CancelledError:
            job.last_status = "cancelled"
            raise
        except Exception as exc:
            job.last_status = f"failed: {describe_error(exc)}"
            logger.exception("%s failed", name)
        finally:
            job.running = False
            job.last_run = started
            job.run_count += 1
        return True

    async def _job_loop(self, job: ScheduledJob) -> None:
        while True:
            now = self.clock()
            next_run = job.calculate_next_run(now)
            delay = max((next_run - now).total_seconds(), 0.0)
            logger.debug("%s sleeping %.1fs until %s", job.name, delay, next_run)
            await self.sleep(delay)
            await self.run_job(job.name)

    def start(self) -> None:
        if self._tasks:
            logger.warning("Scheduler already started")
            return
        for job in self.jobs.values():
            self._tasks.append(asyncio.create_task(self._job_loop(job), name=f"schedule:{job.name}"))
        logger.info("Scheduler started with %d job(s)", len(self._tasks))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Scheduler stopped")

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    def status(self) -> List[Dict[str, Any]]:
        return [job.to_dict() for job in self.jobs.values()]

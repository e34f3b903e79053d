from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cloudledger.shared.core.ops_metrics import UNIT_RUNS

logger = structlog.get_logger()

INVENTORY_JOB_ID = "inventory_sync"


class InventoryScheduler:
    """Manages APScheduler and the periodic inventory job."""

    def __init__(
        self,
        run_inventory: Callable[[], Awaitable[Any]],
        *,
        interval_minutes: int,
        run_immediately: bool = True,
    ):
        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self.run_inventory = run_inventory
        self.interval_minutes = interval_minutes
        self.run_immediately = run_immediately
        self._last_run_success: bool | None = None
        self._last_run_time: str | None = None
        self._current_task: asyncio.Task[Any] | None = None

    async def inventory_job(self) -> None:
        logger.info("scheduler_inventory_run_started")
        self._current_task = asyncio.current_task()
        try:
            await self.run_inventory()
        except Exception as exc:
            # Keep the schedule alive; the next interval retries the whole run.
            self._last_run_success = False
            UNIT_RUNS.labels(unit=INVENTORY_JOB_ID, status="failure").inc()
            logger.error("scheduler_inventory_run_failed", error=str(exc), error_type=type(exc).__name__)
        else:
            self._last_run_success = True
            UNIT_RUNS.labels(unit=INVENTORY_JOB_ID, status="success").inc()
            logger.info("scheduler_inventory_run_completed")
        finally:
            self._current_task = None
            self._last_run_time = datetime.now(timezone.utc).isoformat()

    def start(self) -> None:
        job_options: dict[str, Any] = {}
        if self.run_immediately:
            # An explicit None would add the job paused.
            job_options["next_run_time"] = datetime.now(timezone.utc)
        self.scheduler.add_job(
            self.inventory_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=INVENTORY_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **job_options,
        )
        self.scheduler.start()
        logger.info("scheduler_started", interval_minutes=self.interval_minutes)

    async def stop(self) -> None:
        """Stop scheduling and cancel an in-flight run, waiting for it to unwind."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        task = self._current_task
        if task is not None and not task.done():
            logger.info("scheduler_cancelling_inventory_run")
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        logger.info("scheduler_stopped")

    def get_status(self) -> dict[str, Any]:
        return {
            "running": self.scheduler.running,
            "last_run_success": self._last_run_success,
            "last_run_time": self._last_run_time,
            "jobs": [str(job.id) for job in self.scheduler.get_jobs()],
        }

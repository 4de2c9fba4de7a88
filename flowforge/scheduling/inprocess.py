"""In-process schedule backend built on APScheduler."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..contracts import ScheduleEntry
from .base import FireCallback, ScheduleBackend
from .cron import build_trigger

logger = logging.getLogger(__name__)


class InProcessScheduleBackend(ScheduleBackend):
    """One APScheduler job per workflow on the running event loop.

    Jobs use ``max_instances=1`` so a fire that overlaps a still-running one
    is skipped by the scheduler itself.
    """

    name = "inprocess"

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None) -> None:
        self.scheduler = scheduler or AsyncIOScheduler()

    async def open(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("In-process scheduler started")

    async def close(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("In-process scheduler stopped")

    async def start(self, entry: ScheduleEntry, callback: FireCallback) -> Job:
        await self.open()
        trigger = build_trigger(entry.cron_expression, entry.timezone)
        job = self.scheduler.add_job(
            callback,
            trigger,
            id=f"workflow-{entry.workflow_id}-{uuid.uuid4().hex[:8]}",
            name=f"workflow {entry.workflow_id}",
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            f"Scheduled workflow {entry.workflow_id} with '{entry.cron_expression}' "
            f"({entry.timezone})"
        )
        return job

    async def stop(self, handle: Any) -> None:
        try:
            self.scheduler.remove_job(handle.id)
        except JobLookupError:
            logger.debug(f"Job {handle.id} already removed")

    def next_fire_time(self, handle: Any) -> Optional[datetime]:
        job = self.scheduler.get_job(handle.id)
        return getattr(job, "next_run_time", None) if job else None

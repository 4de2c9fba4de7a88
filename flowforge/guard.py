"""Duplicate-run suppression and the periodic reconciliation sweep."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import timedelta
from typing import Any, Callable, Optional

from .constants import (
    DEFAULT_DUPLICATE_WINDOW_SECONDS,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
    DUPLICATE_EXECUTION_ERROR,
)
from .contracts import DuplicateRunSkipped
from .execute import WorkflowOrchestrator
from .persistence import ExecutionRecord, ExecutionRepository
from .persistence.models import utcnow

logger = logging.getLogger(__name__)


class DuplicateGuard:
    """Decline runs of a workflow that is already running or just finished.

    The check and the subsequent record creation are not atomic, so two
    triggers arriving in the same instant can both pass. The sweep cleans up
    whatever slips through.
    """

    def __init__(
        self,
        repository: ExecutionRepository,
        orchestrator: WorkflowOrchestrator,
        window_seconds: float = DEFAULT_DUPLICATE_WINDOW_SECONDS,
        clock: Callable[[], Any] = utcnow,
    ) -> None:
        self.repository = repository
        self.orchestrator = orchestrator
        self.window = timedelta(seconds=window_seconds)
        self._clock = clock
        self._sweeper: Optional[asyncio.Task] = None

    async def check(self, workflow_id: str) -> DuplicateRunSkipped | None:
        cutoff = self._clock() - self.window
        blocking = [
            e.id
            for e in await self.repository.list_executions(workflow_id)
            if e.status == "running" or (e.status == "completed" and e.started_at > cutoff)
        ]
        if not blocking:
            return None
        return DuplicateRunSkipped(workflow_id=workflow_id, blocking_execution_ids=blocking)

    async def run_guarded(
        self, workflow_id: str, payload: Optional[dict[str, Any]] = None
    ) -> ExecutionRecord | DuplicateRunSkipped:
        skipped = await self.check(workflow_id)
        if skipped is not None:
            logger.warning(
                f"Skipping run of {workflow_id}: {len(skipped.blocking_execution_ids)} "
                "executions still running or recently completed"
            )
            return skipped
        return await self.orchestrator.run(workflow_id, payload)

    async def reconcile_running(self) -> list[str]:
        """Fail every running record except the newest one per workflow.

        Returns the ids of the records that were stopped.
        """

        running: dict[str, list[ExecutionRecord]] = defaultdict(list)
        for record in await self.repository.list_executions():
            if record.status == "running":
                running[record.workflow_id].append(record)

        stopped: list[str] = []
        for workflow_id, records in running.items():
            if len(records) < 2:
                continue
            records.sort(key=lambda r: r.started_at, reverse=True)
            for record in records[1:]:
                record.add_log("warning", DUPLICATE_EXECUTION_ERROR)
                record.mark_failed(DUPLICATE_EXECUTION_ERROR)
                await self.repository.update_execution(record)
                stopped.append(record.id)
            logger.warning(
                f"Stopped {len(records) - 1} duplicate executions of workflow {workflow_id}"
            )
        return stopped

    # ------------------------------------------------------------------
    def start_sweeper(self, interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS) -> None:
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(interval))
        logger.info(f"Duplicate sweep started, interval {interval}s")

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("Duplicate sweep stopped")

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.reconcile_running()
            except Exception:
                logger.exception("Duplicate sweep failed")

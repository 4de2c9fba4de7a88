"""Schedule registry: the single owner of live recurring triggers."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Optional

from ..constants import DEFAULT_TIMEZONE
from ..contracts import ScheduleEntry, WorkflowDefinition
from ..errors import ConfigurationError, InvalidScheduleError, NotFoundError
from ..guard import DuplicateGuard
from ..persistence.models import utcnow
from .base import FireCallback, ScheduleBackend
from .cron import normalize_cron

logger = logging.getLogger(__name__)


class ScheduleRegistry:
    """Map of workflow id to its live schedule entry.

    At most one entry exists per workflow. Registering again replaces the
    previous entry after stopping its backing schedule. Mutations for the
    same workflow are serialised; different workflows proceed independently.
    """

    def __init__(
        self,
        backend: ScheduleBackend,
        guard: DuplicateGuard,
        default_timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        self.backend = backend
        self.guard = guard
        self.default_timezone = default_timezone
        self._entries: dict[str, ScheduleEntry] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._in_flight: defaultdict[str, set[asyncio.Task]] = defaultdict(set)

    async def register(self, workflow: WorkflowDefinition) -> bool:
        config = workflow.cron_config
        if config is None:
            logger.warning(f"Workflow {workflow.id} does not have a cron trigger")
            return False
        timezone = config.timezone or self.default_timezone
        try:
            expression = normalize_cron(config.schedule, timezone)
        except InvalidScheduleError as e:
            logger.error(f"Cannot schedule workflow {workflow.id}: {e}")
            return False

        async with self._locks[workflow.id]:
            existing = self._entries.pop(workflow.id, None)
            if existing is not None:
                logger.info(f"Replacing existing schedule for workflow {workflow.id}")
                await self._stop_entry(existing)

            entry = ScheduleEntry(
                workflow_id=workflow.id,
                cron_expression=expression,
                timezone=timezone,
                backend=self.backend.name,
            )
            try:
                entry.backing_handle = await self.backend.start(
                    entry, self._callback(workflow.id, timezone)
                )
            except ConfigurationError:
                raise
            except Exception:
                logger.exception(f"Failed to start schedule for workflow {workflow.id}")
                return False
            entry.next_execution = self.backend.next_fire_time(entry.backing_handle)
            self._entries[workflow.id] = entry

        logger.info(f"Workflow {workflow.id} scheduled with '{expression}' ({timezone})")
        return True

    async def unregister(self, workflow_id: str, cancel_pending: bool = False) -> bool:
        """Remove the entry for ``workflow_id``. Returns whether one existed."""

        async with self._locks[workflow_id]:
            entry = self._entries.pop(workflow_id, None)
            if entry is not None:
                await self._stop_entry(entry)
                logger.info(f"Schedule for workflow {workflow_id} removed")
            if cancel_pending:
                self._cancel_in_flight(workflow_id)
        return entry is not None

    async def unregister_all(self, cancel_pending: bool = False) -> int:
        count = 0
        for workflow_id in list(self._entries):
            try:
                if await self.unregister(workflow_id, cancel_pending=cancel_pending):
                    count += 1
            except Exception:
                logger.exception(f"Failed to remove schedule for workflow {workflow_id}")
        return count

    def get(self, workflow_id: str) -> Optional[ScheduleEntry]:
        return self._entries.get(workflow_id)

    def list_active(self) -> list[ScheduleEntry]:
        entries = []
        for entry in self._entries.values():
            entry.next_execution = self.backend.next_fire_time(entry.backing_handle)
            entries.append(entry)
        return entries

    def in_flight(self, workflow_id: str) -> int:
        return len(self._in_flight.get(workflow_id, ()))

    async def fire(self, workflow_id: str, timezone: Optional[str] = None) -> None:
        """Run one scheduled occurrence. Errors are logged, never raised."""

        task = asyncio.current_task()
        if task is not None:
            self._in_flight[workflow_id].add(task)
        payload = {
            "trigger": "cron",
            "timestamp": utcnow().isoformat(),
            "timezone": timezone or self.default_timezone,
        }
        try:
            await self.guard.run_guarded(workflow_id, payload)
        except NotFoundError as e:
            logger.warning(f"Scheduled fire skipped: {e}")
        except Exception as e:
            logger.error(f"Scheduled run of workflow {workflow_id} failed: {e}")
        finally:
            if task is not None:
                self._in_flight[workflow_id].discard(task)
            entry = self._entries.get(workflow_id)
            if entry is not None:
                entry.next_execution = self.backend.next_fire_time(entry.backing_handle)

    # ------------------------------------------------------------------
    def _callback(self, workflow_id: str, timezone: str) -> FireCallback:
        async def on_fire() -> None:
            await self.fire(workflow_id, timezone)

        return on_fire

    async def _stop_entry(self, entry: ScheduleEntry) -> None:
        try:
            await self.backend.stop(entry.backing_handle)
        except Exception:
            logger.exception(f"Failed to stop schedule for workflow {entry.workflow_id}")

    def _cancel_in_flight(self, workflow_id: str) -> None:
        tasks = self._in_flight.pop(workflow_id, set())
        current = asyncio.current_task()
        for task in tasks:
            if task is not current and not task.done():
                task.cancel()
        if tasks:
            logger.info(f"Cancelled {len(tasks)} in-flight runs of workflow {workflow_id}")

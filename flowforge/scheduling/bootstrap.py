"""Startup reconciliation of schedules with the stored definitions."""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

from ..definitions import WorkflowDefinitionStore
from ..errors import ConfigurationError
from .registry import ScheduleRegistry

logger = logging.getLogger(__name__)

BootstrapPolicy = Literal["resume", "reset"]

_first_start = True


def reset_first_start() -> None:
    """Make the next ``reset`` bootstrap behave like a fresh process."""
    global _first_start
    _first_start = True


class BootstrapReport(BaseModel):
    policy: BootstrapPolicy
    deactivated: list[str] = Field(default_factory=list)
    registered: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    removed_stale: list[str] = Field(default_factory=list)


class ScheduleBootstrapper:
    """Bring the registry in line with the definitions at process start.

    ``reset`` marks every active cron workflow inactive, once per process.
    ``resume`` registers every active cron workflow. Either way, schedules that
    survived in the backend from a previous process are removed first.
    """

    def __init__(
        self,
        definitions: WorkflowDefinitionStore,
        registry: ScheduleRegistry,
        policy: BootstrapPolicy = "resume",
    ) -> None:
        self.definitions = definitions
        self.registry = registry
        self.policy = policy

    async def run(self) -> BootstrapReport:
        global _first_start

        report = BootstrapReport(policy=self.policy)
        report.removed_stale = await self._remove_stale()

        workflows = [w for w in await self.definitions.list_all() if w.is_cron and w.is_active]
        if self.policy == "reset":
            if not _first_start:
                logger.info("Skipping schedule reset (not first start)")
                return report
            _first_start = False
            for workflow in workflows:
                try:
                    await self.definitions.set_active(workflow.id, False)
                    report.deactivated.append(workflow.id)
                except Exception:
                    logger.exception(f"Failed to deactivate workflow {workflow.id}")
                    report.failed.append(workflow.id)
            logger.info(f"Schedule reset deactivated {len(report.deactivated)} workflows")
            return report

        for workflow in workflows:
            try:
                registered = await self.registry.register(workflow)
            except ConfigurationError as e:
                logger.error(f"Cannot resume schedule for workflow {workflow.id}: {e}")
                registered = False
            (report.registered if registered else report.failed).append(workflow.id)
        logger.info(
            f"Resumed {len(report.registered)} schedules, {len(report.failed)} failed"
        )
        return report

    async def _remove_stale(self) -> list[str]:
        backend = self.registry.backend
        try:
            recovered = await backend.recover()
        except Exception:
            logger.exception("Failed to list schedules left by a previous process")
            return []

        removed = []
        for schedule in recovered:
            try:
                await backend.stop(schedule.backing_handle)
                removed.append(schedule.workflow_id)
            except Exception:
                logger.exception(
                    f"Failed to remove stale schedule for workflow {schedule.workflow_id}"
                )
        if removed:
            logger.info(f"Removed {len(removed)} stale schedules")
        return removed

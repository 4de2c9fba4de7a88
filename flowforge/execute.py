"""Workflow orchestrator: runs a definition's actions in order and records the run."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Optional

from .actions import ActionExecutor
from .constants import CANCELLED_EXECUTION_ERROR
from .contracts import WorkflowAction
from .definitions import WorkflowDefinitionStore
from .errors import NotFoundError
from .notify import FailureNotifier, notify_safely
from .persistence import ExecutionRecord, ExecutionRepository

logger = logging.getLogger(__name__)


class WorkflowOrchestrator:
    """Execute one workflow run end to end.

    The record is written when the run starts, before and after every action
    and once more at the terminal state, so pollers and the duplicate guard
    see progress. A failing action stops the chain; the failure is persisted,
    reported to the notifier and then re-raised.
    """

    def __init__(
        self,
        definitions: WorkflowDefinitionStore,
        repository: ExecutionRepository,
        executor: ActionExecutor,
        notifier: Optional[FailureNotifier] = None,
    ) -> None:
        self.definitions = definitions
        self.repository = repository
        self.executor = executor
        self.notifier = notifier

    async def run(
        self, workflow_id: str, trigger_payload: Optional[dict[str, Any]] = None
    ) -> ExecutionRecord:
        workflow = await self.definitions.get_by_id(workflow_id)
        if workflow is None:
            raise NotFoundError(workflow_id)

        record = ExecutionRecord(workflow_id=workflow_id)
        await self.repository.create_execution(record)
        logger.info(f"Starting execution {record.id} of workflow {workflow_id}")

        payload: dict[str, Any] = dict(trigger_payload or {})
        current: Optional[WorkflowAction] = None
        try:
            for current in workflow.actions:
                record.add_log(
                    "info", f"Executing action: {current.type}", action_id=current.id
                )
                await self.repository.update_execution(record)
                await self.executor.execute(current, payload)
                record.add_log(
                    "info", f"Action {current.type} completed successfully", action_id=current.id
                )
                await self.repository.update_execution(record)
        except asyncio.CancelledError:
            record.add_log(
                "error", CANCELLED_EXECUTION_ERROR, action_id=current.id if current else None
            )
            record.mark_failed(CANCELLED_EXECUTION_ERROR)
            await self.repository.update_execution(record)
            logger.warning(f"Execution {record.id} of workflow {workflow_id} cancelled")
            raise
        except Exception as e:
            record.add_log(
                "error",
                f"Workflow execution failed: {e}",
                action_id=current.id if current else None,
            )
            record.mark_failed(str(e))
            await self.repository.update_execution(record)
            logger.error(f"Execution {record.id} of workflow {workflow_id} failed: {e}")
            await notify_safely(self.notifier, workflow_id, e, record)
            raise

        record.mark_completed(copy.deepcopy(payload))
        record.add_log("info", "Workflow execution completed successfully")
        await self.repository.update_execution(record)
        logger.info(f"Execution {record.id} of workflow {workflow_id} completed")
        return record

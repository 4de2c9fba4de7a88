"""Run a workflow in a separate worker process with a hard timeout.

The worker is spawned fresh, rebuilds the engine from the serialised
configuration and reports ``{"success": ..., "result" | "error": ...}`` over a
pipe. Records are only visible to the parent when the configured execution
store is shared (SQLite, Postgres or Redis). Records a timed-out or crashed
worker leaves running are marked failed by the parent.
"""

from __future__ import annotations

import asyncio
import logging
import multiprocessing
import time
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from .config import FlowforgeConfig
from .constants import DEFAULT_ISOLATION_TIMEOUT_SECONDS
from .persistence import ExecutionRepository
from .persistence.models import utcnow

logger = logging.getLogger(__name__)


class IsolatedResult(BaseModel):
    success: bool
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    exit_code: Optional[int] = None


def _worker_main(conn, config_data: dict[str, Any], workflow_id: str, payload: dict) -> None:
    from .engine import build_engine

    async def _run() -> dict[str, Any]:
        engine = build_engine(FlowforgeConfig.model_validate(config_data))
        try:
            record = await engine.run_workflow(workflow_id, payload)
            return {"success": True, "result": record.to_document()}
        finally:
            await engine.close()

    try:
        message = asyncio.run(_run())
    except Exception as e:
        message = {"success": False, "error": str(e)}
    try:
        conn.send(message)
    finally:
        conn.close()


class IsolatedExecutor:
    def __init__(
        self,
        config: FlowforgeConfig,
        timeout: float = DEFAULT_ISOLATION_TIMEOUT_SECONDS,
        context: Any = None,
        repository: Optional[ExecutionRepository] = None,
    ) -> None:
        self.config = config
        self.timeout = timeout
        self.repository = repository
        self._context = context or multiprocessing.get_context("spawn")

    async def run(
        self, workflow_id: str, payload: Optional[dict[str, Any]] = None
    ) -> IsolatedResult:
        parent_conn, child_conn = self._context.Pipe(duplex=False)
        process = self._context.Process(
            target=_worker_main,
            args=(child_conn, self.config.model_dump(), workflow_id, dict(payload or {})),
            daemon=True,
        )
        launched_at = utcnow()
        process.start()
        child_conn.close()
        logger.info(f"Started isolated run of workflow {workflow_id} (pid {process.pid})")

        deadline = time.monotonic() + self.timeout
        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return await self._timed_out(workflow_id, process, launched_at)
                if await asyncio.to_thread(parent_conn.poll, min(remaining, 1.0)):
                    break
                if not process.is_alive():
                    break

            try:
                message = parent_conn.recv()
            except EOFError:
                await asyncio.to_thread(process.join, 5)
                logger.error(f"Isolated worker for {workflow_id} exited without a result")
                error = f"Worker exited without a result (exit code {process.exitcode})"
                await self._fail_orphaned(workflow_id, launched_at, error)
                return IsolatedResult(success=False, error=error, exit_code=process.exitcode)
        finally:
            parent_conn.close()

        await asyncio.to_thread(process.join, 5)
        result = IsolatedResult(**message, exit_code=process.exitcode)
        if result.success:
            logger.info(f"Isolated run of workflow {workflow_id} completed")
        else:
            logger.error(f"Isolated run of workflow {workflow_id} failed: {result.error}")
        return result

    async def _timed_out(
        self, workflow_id: str, process: Any, launched_at: datetime
    ) -> IsolatedResult:
        logger.error(
            f"Isolated run of workflow {workflow_id} exceeded {self.timeout}s, terminating"
        )
        process.terminate()
        await asyncio.to_thread(process.join, 5)
        error = f"Workflow execution timed out after {self.timeout}s"
        await self._fail_orphaned(workflow_id, launched_at, error)
        return IsolatedResult(success=False, error=error, exit_code=process.exitcode)

    async def _fail_orphaned(self, workflow_id: str, launched_at: datetime, error: str) -> None:
        """Fail the records a killed worker left running.

        Only records of ``workflow_id`` started after the worker was launched
        are touched.
        """
        if self.repository is None:
            return
        for record in await self.repository.list_executions(workflow_id):
            if record.status != "running" or record.started_at < launched_at:
                continue
            record.add_log("error", error)
            record.mark_failed(error)
            await self.repository.update_execution(record)
            logger.warning(f"Marked execution {record.id} of workflow {workflow_id} failed")

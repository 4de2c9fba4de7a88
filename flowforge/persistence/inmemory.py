"""In-memory implementation of the execution repository."""

from __future__ import annotations

from typing import Dict, Optional

from .models import ExecutionRecord
from .repository import ExecutionRepository


class InMemoryExecutionRepository(ExecutionRepository):
    """Store execution records in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers cannot mutate the stored state behind the store's back.
    """

    def __init__(self) -> None:
        self._executions: Dict[str, ExecutionRecord] = {}

    # ------------------------------------------------------------------
    async def create_execution(self, record: ExecutionRecord) -> None:
        if record.id in self._executions:
            raise ValueError(f"Execution {record.id} already exists")
        self._executions[record.id] = record.model_copy(deep=True)

    async def update_execution(self, record: ExecutionRecord) -> None:
        if record.id not in self._executions:
            raise KeyError(record.id)
        self._executions[record.id] = record.model_copy(deep=True)

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        record = self._executions.get(execution_id)
        return record.model_copy(deep=True) if record else None

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> list[ExecutionRecord]:
        records = [
            r.model_copy(deep=True)
            for r in self._executions.values()
            if workflow_id is None or r.workflow_id == workflow_id
        ]
        records.sort(key=lambda r: r.started_at)
        return records

"""Repository abstraction for execution record persistence."""

from __future__ import annotations

from typing import Optional, Protocol

from .models import ExecutionRecord


class ExecutionRepository(Protocol):
    """Protocol for execution record persistence backends.

    Writes are last-write-wins per record id. Each record has exactly one
    writer (the orchestrator running it) apart from the duplicate sweep.
    """

    async def create_execution(self, record: ExecutionRecord) -> None:
        """Persist a new execution record."""

    async def update_execution(self, record: ExecutionRecord) -> None:
        """Replace the stored copy of ``record`` (matched by id)."""

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        """Retrieve an execution record by id."""

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> list[ExecutionRecord]:
        """Return records ordered by ``started_at``, optionally for one workflow."""

"""Collaborator interface for reading workflow definitions."""

from __future__ import annotations

from typing import Protocol

from ..contracts import WorkflowDefinition


class WorkflowDefinitionStore(Protocol):
    """Read access to stored workflow definitions plus the active flag."""

    async def get_by_id(self, workflow_id: str) -> WorkflowDefinition | None:
        """Return the definition or ``None`` when it does not exist."""

    async def list_all(self) -> list[WorkflowDefinition]:
        """Return every stored definition."""

    async def set_active(self, workflow_id: str, active: bool) -> None:
        """Flip ``is_active`` on a definition. Unknown ids are ignored."""

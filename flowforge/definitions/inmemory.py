"""In-memory workflow definition store."""

from __future__ import annotations

from typing import Dict, Iterable

from ..contracts import WorkflowDefinition
from .repository import WorkflowDefinitionStore


class InMemoryDefinitionStore(WorkflowDefinitionStore):
    """Keep definitions in a dict. Mostly useful for tests."""

    def __init__(self, workflows: Iterable[WorkflowDefinition] = ()) -> None:
        self._workflows: Dict[str, WorkflowDefinition] = {}
        for workflow in workflows:
            self.put(workflow)

    def put(self, workflow: WorkflowDefinition) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)

    def delete(self, workflow_id: str) -> bool:
        return self._workflows.pop(workflow_id, None) is not None

    async def get_by_id(self, workflow_id: str) -> WorkflowDefinition | None:
        workflow = self._workflows.get(workflow_id)
        return workflow.model_copy(deep=True) if workflow else None

    async def list_all(self) -> list[WorkflowDefinition]:
        return [w.model_copy(deep=True) for w in self._workflows.values()]

    async def set_active(self, workflow_id: str, active: bool) -> None:
        workflow = self._workflows.get(workflow_id)
        if workflow:
            workflow.is_active = active

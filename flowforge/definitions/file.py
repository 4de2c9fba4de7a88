"""Workflow definitions stored in a YAML document.

The file holds either a list of workflows or a mapping with a ``workflows``
key. JSON is valid YAML, so an exported ``workflows.json`` works as well.
"""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Any

import yaml

from ..contracts import WorkflowDefinition
from .repository import WorkflowDefinitionStore


class FileDefinitionStore(WorkflowDefinitionStore):
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load_raw_unlocked(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or []
        if isinstance(data, dict):
            data = data.get("workflows") or []
        if not isinstance(data, list):
            raise ValueError(f"{self.path} must contain a list of workflows")
        return data

    def _save_raw_unlocked(self, items: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            yaml.safe_dump({"workflows": items}, sort_keys=False, allow_unicode=True),
            encoding="utf-8",
        )

    def _load(self) -> list[WorkflowDefinition]:
        with self._lock:
            return [WorkflowDefinition.model_validate(i) for i in self._load_raw_unlocked()]

    def _set_active(self, workflow_id: str, active: bool) -> None:
        with self._lock:
            items = self._load_raw_unlocked()
            changed = False
            for item in items:
                if item.get("id") == workflow_id:
                    item.pop("is_active", None)
                    item["isActive"] = active
                    changed = True
            if changed:
                self._save_raw_unlocked(items)

    # ------------------------------------------------------------------
    async def get_by_id(self, workflow_id: str) -> WorkflowDefinition | None:
        workflows = await asyncio.to_thread(self._load)
        return next((w for w in workflows if w.id == workflow_id), None)

    async def list_all(self) -> list[WorkflowDefinition]:
        return await asyncio.to_thread(self._load)

    async def set_active(self, workflow_id: str, active: bool) -> None:
        await asyncio.to_thread(self._set_active, workflow_id, active)

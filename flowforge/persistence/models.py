"""Data models for persisted execution state."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ExecutionStatus = Literal["pending", "running", "completed", "failed"]
LogLevel = Literal["info", "warning", "error"]

TERMINAL_STATUSES = frozenset({"completed", "failed"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionLogEntry(BaseModel):
    """Single append-only log line of a workflow run."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: f"log_{uuid.uuid4().hex}")
    timestamp: datetime = Field(default_factory=utcnow)
    level: LogLevel = "info"
    message: str
    action_id: Optional[str] = Field(default=None, alias="actionId")
    data: Any = None


class ExecutionRecord(BaseModel):
    """Persisted record of one workflow run."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: f"exec_{uuid.uuid4().hex}")
    workflow_id: str = Field(alias="workflowId")
    status: ExecutionStatus = "running"
    started_at: datetime = Field(default_factory=utcnow, alias="startedAt")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")
    error: Optional[str] = None
    result: Optional[dict[str, Any]] = None
    logs: list[ExecutionLogEntry] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def add_log(
        self,
        level: LogLevel,
        message: str,
        action_id: Optional[str] = None,
        data: Any = None,
    ) -> ExecutionLogEntry:
        entry = ExecutionLogEntry(
            level=level, message=message, action_id=action_id, data=data
        )
        self.logs.append(entry)
        return entry

    def mark_failed(self, error: str) -> None:
        self.status = "failed"
        self.error = error
        self.result = None
        self.completed_at = utcnow()

    def mark_completed(self, result: dict[str, Any]) -> None:
        self.status = "completed"
        self.error = None
        self.result = result
        self.completed_at = utcnow()

    def to_document(self) -> dict[str, Any]:
        """JSON-compatible document using the external camelCase names."""
        return self.model_dump(mode="json", by_alias=True)

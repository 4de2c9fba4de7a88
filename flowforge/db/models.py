from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowRow(SQLModel, table=True):
    """Stored workflow definition."""

    __tablename__ = "workflows"

    id: str = Field(primary_key=True)
    name: str = ""
    description: Optional[str] = None
    is_active: bool = Field(default=False, index=True)
    trigger: dict = Field(sa_column=Column(JSON, nullable=False))
    actions: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

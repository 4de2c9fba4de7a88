from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel, select

from ..contracts import WorkflowDefinition
from ..definitions.repository import WorkflowDefinitionStore
from .models import WorkflowRow


class WorkflowDB(WorkflowDefinitionStore):
    """Async database-backed workflow definition store."""

    def __init__(self, database_url: str) -> None:
        connect_args = (
            {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        )
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )
        self._initialized = False

    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        self._initialized = True

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if not self._initialized:
            await self.init_db()
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    @staticmethod
    def _to_definition(row: WorkflowRow) -> WorkflowDefinition:
        return WorkflowDefinition.model_validate(
            {
                "id": row.id,
                "name": row.name,
                "description": row.description,
                "trigger": row.trigger,
                "actions": row.actions,
                "is_active": row.is_active,
            }
        )

    async def save(self, workflow: WorkflowDefinition) -> None:
        """Insert or replace a definition; used for seeding and imports."""
        data = workflow.model_dump(mode="json", by_alias=True)
        async with self.session() as session:
            row = await session.get(WorkflowRow, workflow.id)
            if row is None:
                row = WorkflowRow(id=workflow.id, trigger=data["trigger"])
            row.name = workflow.name
            row.description = workflow.description
            row.is_active = workflow.is_active
            row.trigger = data["trigger"]
            row.actions = data["actions"]
            row.updated_at = datetime.now(timezone.utc)
            session.add(row)
            await session.commit()

    async def get_by_id(self, workflow_id: str) -> WorkflowDefinition | None:
        async with self.session() as session:
            row = await session.get(WorkflowRow, workflow_id)
            return self._to_definition(row) if row else None

    async def list_all(self) -> list[WorkflowDefinition]:
        async with self.session() as session:
            result = await session.execute(select(WorkflowRow))
            return [self._to_definition(row) for row in result.scalars().all()]

    async def set_active(self, workflow_id: str, active: bool) -> None:
        async with self.session() as session:
            row = await session.get(WorkflowRow, workflow_id)
            if row is None:
                return
            row.is_active = active
            row.updated_at = datetime.now(timezone.utc)
            session.add(row)
            await session.commit()

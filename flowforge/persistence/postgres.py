"""PostgreSQL implementation of the execution repository."""

from __future__ import annotations

import json
from typing import Any, Optional

import asyncpg

from .models import ExecutionRecord
from .repository import ExecutionRepository

_COLUMNS = "id, workflow_id, status, started_at, completed_at, error, result, logs"


def _json_value(value: Any) -> Any:
    # asyncpg hands JSONB back as text unless a codec is registered.
    if isinstance(value, str):
        return json.loads(value)
    return value


class PostgresExecutionRepository(ExecutionRepository):
    """Persist execution records using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ,
                error TEXT,
                result JSONB,
                logs JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_executions_workflow ON executions (workflow_id)"
        )

    @staticmethod
    def _params(record: ExecutionRecord) -> tuple[Any, ...]:
        data = record.model_dump(mode="json")
        return (
            record.workflow_id,
            record.status,
            record.started_at,
            record.completed_at,
            record.error,
            json.dumps(data["result"]) if data["result"] is not None else None,
            json.dumps(data["logs"]),
        )

    @staticmethod
    def _from_row(row: asyncpg.Record) -> ExecutionRecord:
        return ExecutionRecord.model_validate(
            {
                "id": row["id"],
                "workflow_id": row["workflow_id"],
                "status": row["status"],
                "started_at": row["started_at"],
                "completed_at": row["completed_at"],
                "error": row["error"],
                "result": _json_value(row["result"]),
                "logs": _json_value(row["logs"]),
            }
        )

    # ------------------------------------------------------------------
    async def create_execution(self, record: ExecutionRecord) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO executions ({_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)",
                record.id,
                *self._params(record),
            )
        finally:
            await conn.close()

    async def update_execution(self, record: ExecutionRecord) -> None:
        conn = await self._connect()
        try:
            status = await conn.execute(
                """
                UPDATE executions
                SET workflow_id = $1, status = $2, started_at = $3, completed_at = $4,
                    error = $5, result = $6, logs = $7
                WHERE id = $8
                """,
                *self._params(record),
                record.id,
            )
        finally:
            await conn.close()
        if status.endswith(" 0"):
            raise KeyError(record.id)

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM executions WHERE id = $1", execution_id
            )
        finally:
            await conn.close()
        return self._from_row(row) if row else None

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> list[ExecutionRecord]:
        conn = await self._connect()
        try:
            if workflow_id is None:
                rows = await conn.fetch(
                    f"SELECT {_COLUMNS} FROM executions ORDER BY started_at"
                )
            else:
                rows = await conn.fetch(
                    f"SELECT {_COLUMNS} FROM executions WHERE workflow_id = $1 ORDER BY started_at",
                    workflow_id,
                )
        finally:
            await conn.close()
        return [self._from_row(r) for r in rows]

"""SQLite implementation of the execution repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from pathlib import Path
from typing import Any, Optional

from .models import ExecutionRecord
from .repository import ExecutionRepository

_COLUMNS = "id, workflow_id, status, started_at, completed_at, error, result, logs"


class SQLiteExecutionRepository(ExecutionRepository):
    """Persist execution records using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                error TEXT,
                result TEXT,
                logs TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_executions_workflow ON executions (workflow_id)"
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _params(record: ExecutionRecord) -> tuple[Any, ...]:
        data = record.model_dump(mode="json")
        return (
            data["workflow_id"],
            data["status"],
            data["started_at"],
            data["completed_at"],
            data["error"],
            json.dumps(data["result"]) if data["result"] is not None else None,
            json.dumps(data["logs"]),
        )

    @staticmethod
    def _from_row(row: sqlite3.Row) -> ExecutionRecord:
        return ExecutionRecord.model_validate(
            {
                "id": row["id"],
                "workflow_id": row["workflow_id"],
                "status": row["status"],
                "started_at": row["started_at"],
                "completed_at": row["completed_at"],
                "error": row["error"],
                "result": json.loads(row["result"]) if row["result"] else None,
                "logs": json.loads(row["logs"]),
            }
        )

    # ------------------------------------------------------------------
    # Repository API
    async def create_execution(self, record: ExecutionRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO executions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            record.id,
            *self._params(record),
        )

    async def update_execution(self, record: ExecutionRecord) -> None:
        updated = await asyncio.to_thread(
            self._execute,
            """
            UPDATE executions
            SET workflow_id = ?, status = ?, started_at = ?, completed_at = ?,
                error = ?, result = ?, logs = ?
            WHERE id = ?
            """,
            *self._params(record),
            record.id,
        )
        if not updated:
            raise KeyError(record.id)

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_COLUMNS} FROM executions WHERE id = ?",
            execution_id,
        )
        return self._from_row(row) if row else None

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> list[ExecutionRecord]:
        if workflow_id is None:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_COLUMNS} FROM executions ORDER BY started_at",
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_COLUMNS} FROM executions WHERE workflow_id = ? ORDER BY started_at",
                workflow_id,
            )
        return [self._from_row(r) for r in rows]

"""Database action provider.

Runs one parameterised statement against PostgreSQL with ``asyncpg``. Table
and column names are validated against a strict identifier pattern and
quoted; values only ever travel as bind parameters.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

import asyncpg
from pydantic_core import to_jsonable_python

from ..constants import DEFAULT_ACTION_TIMEOUT
from ..contracts import DatabaseActionConfig
from ..errors import ActionExecutionError, ConfigurationError

logger = logging.getLogger(__name__)

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def quote_identifier(name: str) -> str:
    if not IDENTIFIER_RE.match(name):
        raise ConfigurationError(f"Invalid identifier: {name!r}")
    return ".".join(f'"{part}"' for part in name.split("."))


def _where_clause(where: dict[str, Any], params: list[Any]) -> str:
    conditions = []
    for column, value in where.items():
        if value is None:
            conditions.append(f"{quote_identifier(column)} IS NULL")
        else:
            params.append(value)
            conditions.append(f"{quote_identifier(column)} = ${len(params)}")
    return " AND ".join(conditions)


def build_query(config: DatabaseActionConfig) -> tuple[str, list[Any]]:
    """Validate ``config`` and return the SQL statement with its parameters."""

    if not config.table:
        raise ConfigurationError("Database action requires a table")
    table = quote_identifier(config.table)
    params: list[Any] = []

    if config.operation == "insert":
        if not config.data:
            raise ConfigurationError("Insert requires non-empty data")
        columns = ", ".join(quote_identifier(c) for c in config.data)
        params.extend(config.data.values())
        placeholders = ", ".join(f"${i}" for i in range(1, len(params) + 1))
        return f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) RETURNING *", params

    if config.operation == "update":
        if not config.data:
            raise ConfigurationError("Update requires non-empty data")
        if not config.where:
            raise ConfigurationError("Update requires a where clause")
        assignments = []
        for column, value in config.data.items():
            params.append(value)
            assignments.append(f"{quote_identifier(column)} = ${len(params)}")
        condition = _where_clause(config.where, params)
        return f"UPDATE {table} SET {', '.join(assignments)} WHERE {condition}", params

    if config.operation == "delete":
        if not config.where:
            raise ConfigurationError("Delete requires a where clause")
        condition = _where_clause(config.where, params)
        return f"DELETE FROM {table} WHERE {condition}", params

    query = f"SELECT * FROM {table}"
    if config.where:
        query += f" WHERE {_where_clause(config.where, params)}"
    return query, params


def _affected_rows(status: str) -> int:
    # asyncpg returns command tags like "UPDATE 3" or "DELETE 0".
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, IndexError):
        return 0


class AsyncpgDatabaseProvider:
    def __init__(
        self, dsn: Optional[str], timeout: float = DEFAULT_ACTION_TIMEOUT
    ) -> None:
        self._dsn = dsn
        self._timeout = timeout

    async def run_query(
        self, config: DatabaseActionConfig, payload: dict[str, Any]
    ) -> dict[str, Any]:
        query, params = build_query(config)
        if not self._dsn:
            raise ConfigurationError(
                "Database action requires providers.database_url to be configured"
            )

        try:
            conn = await asyncpg.connect(self._dsn, timeout=self._timeout)
        except (OSError, asyncpg.PostgresError) as e:
            raise ActionExecutionError("database", e, f"Database connection failed: {e}") from e

        try:
            if config.operation in ("insert", "select"):
                rows = [dict(r) for r in await conn.fetch(query, *params, timeout=self._timeout)]
                result: dict[str, Any] = {
                    "affectedRows": len(rows),
                    "rows": to_jsonable_python(rows),
                }
                if config.operation == "insert" and rows:
                    result["insertId"] = to_jsonable_python(rows[0].get("id"))
            else:
                status = await conn.execute(query, *params, timeout=self._timeout)
                result = {"affectedRows": _affected_rows(status)}
        except asyncpg.PostgresError as e:
            raise ActionExecutionError("database", e, self._describe(e, config.table)) from e
        finally:
            await conn.close()

        logger.info(
            f"Database {config.operation} on {config.table} affected {result['affectedRows']} rows"
        )
        return result

    @staticmethod
    def _describe(error: asyncpg.PostgresError, table: str) -> str:
        if isinstance(error, asyncpg.UniqueViolationError):
            return f"A record with the same unique value already exists in {table}"
        if isinstance(error, asyncpg.NotNullViolationError):
            column = getattr(error, "column_name", None) or "a required column"
            return f"Column {column} in {table} must not be empty"
        if isinstance(error, (asyncpg.InvalidTextRepresentationError, asyncpg.DataError)):
            return f"A value has the wrong type for a column in {table}"
        if isinstance(error, asyncpg.UndefinedTableError):
            return f"Table {table} does not exist"
        if isinstance(error, asyncpg.UndefinedColumnError):
            return f"Unknown column in {table}: {error}"
        return f"Database operation failed: {error}"

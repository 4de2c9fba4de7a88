"""Redis implementation of the execution repository."""

from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as redis

from .models import ExecutionRecord
from .repository import ExecutionRepository


class RedisExecutionRepository(ExecutionRepository):
    """Persist execution records in Redis.

    Each record is stored as one JSON document. Two sorted sets scored by
    ``started_at`` index all records and the records of each workflow.
    """

    def __init__(self, url: str = "redis://localhost:6379/0", prefix: str = "flowforge") -> None:
        self.url = url
        self.prefix = prefix
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.from_url(self.url, decode_responses=True)
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> Any:
        if not self._redis:
            await self.connect()
        return self._redis

    def _record_key(self, execution_id: str) -> str:
        return f"{self.prefix}:execution:{execution_id}"

    def _index_key(self, workflow_id: Optional[str] = None) -> str:
        if workflow_id is None:
            return f"{self.prefix}:executions"
        return f"{self.prefix}:executions:{workflow_id}"

    # ------------------------------------------------------------------
    async def create_execution(self, record: ExecutionRecord) -> None:
        client = await self._client()
        created = await client.set(
            self._record_key(record.id), record.model_dump_json(), nx=True
        )
        if not created:
            raise ValueError(f"Execution {record.id} already exists")
        score = record.started_at.timestamp()
        async with client.pipeline(transaction=True) as pipe:
            pipe.zadd(self._index_key(), {record.id: score})
            pipe.zadd(self._index_key(record.workflow_id), {record.id: score})
            await pipe.execute()

    async def update_execution(self, record: ExecutionRecord) -> None:
        client = await self._client()
        updated = await client.set(
            self._record_key(record.id), record.model_dump_json(), xx=True
        )
        if not updated:
            raise KeyError(record.id)

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        client = await self._client()
        raw = await client.get(self._record_key(execution_id))
        return ExecutionRecord.model_validate_json(raw) if raw else None

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> list[ExecutionRecord]:
        client = await self._client()
        ids = await client.zrange(self._index_key(workflow_id), 0, -1)
        if not ids:
            return []
        raws = await client.mget([self._record_key(i) for i in ids])
        return [ExecutionRecord.model_validate_json(raw) for raw in raws if raw]

"""FastAPI app factory.

Endpoints are thin wrappers over :class:`~flowforge.engine.WorkflowEngine`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Request

from .constants import SIGNATURE_HEADER
from .engine import WorkflowEngine
from .errors import AuthError, FlowforgeError, MalformedPayloadError

logger = logging.getLogger(__name__)


def create_app(engine: WorkflowEngine, manage_lifecycle: bool = False) -> FastAPI:
    """Build the HTTP app.

    With ``manage_lifecycle`` the engine is started and stopped with the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if manage_lifecycle:
            await engine.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await engine.stop()

    app = FastAPI(title="flowforge", version="0.1.0", lifespan=lifespan)
    app.state.engine = engine

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "scheduler": engine.registry.backend.name,
            "activeSchedules": len(engine.registry.list_active()),
        }

    @app.post(engine.config.external.webhook_path)
    async def scheduled_delivery(request: Request) -> dict[str, Any]:
        raw_body = await request.body()
        signature = request.headers.get(SIGNATURE_HEADER)
        try:
            result = await engine.handle_webhook(signature, raw_body, str(request.url))
        except AuthError as e:
            logger.warning(f"Rejected scheduled delivery: {e}")
            raise HTTPException(status_code=401, detail="Invalid signature")
        except MalformedPayloadError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except FlowforgeError as e:
            logger.error(f"Scheduled delivery failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        return {
            "received": True,
            "processed": result.processed,
            "workflowId": result.workflow_id,
            "executionId": result.execution_id,
            "reason": result.reason,
        }

    return app
